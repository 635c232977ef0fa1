"""Spreadsheet-backed task board client."""
