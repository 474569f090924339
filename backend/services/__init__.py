"""
Initialize services package

Available services:
- tabular_parser: CSV text / values arrays -> header-keyed rows
- schema_mapper: rows -> Recruiter / Candidate / Client / PerformanceMetric
- sheet_inference: header row -> entity kind
- google_auth: service account token exchange
- sheets_fetchers: service account, API key and published CSV fetch chain
- import_orchestrator: one import cycle with replace-all persistence
- refresh_scheduler: per-source auto-refresh with rate limiting
- config_service: saved source configurations
- updates_service: server-sent "data updated" events
"""
