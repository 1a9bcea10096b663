"""Reusable building blocks of the auditory front-end."""
