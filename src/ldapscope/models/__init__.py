"""Data models for ldapscope."""
