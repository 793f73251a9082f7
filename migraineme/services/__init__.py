"""Supabase data access and local store services."""
