"""Core execution engine for autodrive."""
