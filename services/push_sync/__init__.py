"""
Push Sync Service for GitHub → Rally.

This service is responsible for:
- Receiving GitHub push webhooks
- Resolving work-item references in commit messages
- Recording Rally changesets and changes for every pushed commit
- Advancing work-item schedule state on STARTS / COMPLETES keywords
"""

__version__ = "1.0.0"
__description__ = "GitHub push to Rally changeset synchronization service"
