"""Drover: control plane for migrating a source code estate to GitHub.

Drover discovers repositories across a GitHub Enterprise or Azure DevOps
estate, tracks each repository through the migration status machine, groups
repositories into batches, and reports cross-repository dependencies for
migration planning.
"""
