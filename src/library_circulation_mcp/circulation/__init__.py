"""Circulation rules that do not touch the database directly.

- scope: branch visibility and write-branch resolution for a caller
- policy: loan eligibility and fine calculation
- keys: ISBN and student number normalization
- dates: due date parsing
- audit: best-effort audit event emission
"""
