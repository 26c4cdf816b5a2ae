"""
Work Items - Source Package

Turns an uploaded quote, contract or estimate into an editable table of
work items, keeps every row's money fields consistent while the user
edits, exports the table, and promotes it into a project and contract.

DESIGN PRINCIPLES:
1. AI proposes → Human edits → System reconciles
2. Table edits never fail; bad input degrades to 0
3. No silent persistence: promotion is always explicit
4. Every step that leaves the session is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Work Items Team"
