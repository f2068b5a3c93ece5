"""
Data operations package for spreadsheet context handling.

Provides A1 reference parsing, the in-memory grid, context compaction for
model prompts, and structuring of sandbox output back into cell edits.
"""
