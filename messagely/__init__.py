"""Messagely: direct messaging between registered users."""
