"""PaceLoop Infrastructure - location providers and session storage."""
