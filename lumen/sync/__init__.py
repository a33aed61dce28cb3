"""
Remote adapters.

Components:
- remote_store: Document database client (Ok/Err results, never raises)
- blob_store: Binary object storage client
- connectivity: Reachability probes and diagnostics
- uploads: Asset upload with mock-URL fallback
"""
