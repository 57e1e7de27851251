"""Directory sync: reconcile MongoDB identity records into Microsoft Entra ID.

Reads authoritative identity documents from MongoDB, creates or updates
the matching Entra ID accounts through Microsoft Graph, and reports
directory accounts that no longer have a source record.
"""
