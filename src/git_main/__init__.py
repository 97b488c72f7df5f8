"""Get back to the main branch in one command.

Features:
- Switch to main/master (or an explicit branch) and pull the latest changes
- Revert a dirty main branch after confirmation
- Delete local branches that are merged or have an identical tree
- Offer to delete stale branches whose remote is gone
- Reinstall dependencies when the lockfile changed
"""

__version__ = "0.6.0"
