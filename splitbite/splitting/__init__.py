"""
Split engine: allocation, completion tracking, editing and summaries.
"""
from splitbite.splitting.allocator import calculate_split, savings_vs_equal  # noqa: F401
from splitbite.splitting.summary import generate_shareable_summary  # noqa: F401
from splitbite.splitting.tracker import is_complete, receipt_stats, unassigned_items  # noqa: F401
