"""Core models, errors, identifiers, streams and chunk stores."""
