"""MigraineMe sync workers, insights and Supabase data access."""

__version__ = "0.1.0"
