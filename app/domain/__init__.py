"""Pure invoicing domain helpers (no database access)."""
