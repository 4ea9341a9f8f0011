from cleaner.catalog import CatalogBuilder, merge_attachments
from cleaner.deletion import DeletionOrchestrator, DeletionReport, DeletionResult
from cleaner.selection import SelectionEntry, SelectionKey, SelectionSet
from cleaner.session import CleanerSession
from cleaner.stats import Statistics, compute_stats, format_size
