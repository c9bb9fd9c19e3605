"""Accès infrastructure partagé (client Supabase asynchrone)."""
