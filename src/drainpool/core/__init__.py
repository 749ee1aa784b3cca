"""drainpool core — errors, logging and settings shared by every layer."""
