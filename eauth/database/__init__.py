"""SQLite persistence for accounts and verification attempts."""
