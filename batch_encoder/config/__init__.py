"""
Configuration Package for the batch encoder.

This package centralizes the static configuration of the application and the
immutable settings object built from it at startup. Keeping the defaults apart
from the logic makes it easy to tune encoder parameters without touching the
pipeline code.

This package includes:
- Common settings such as the logging format, ledger file names and the
  location of the optional user YAML file.
- Video defaults: recognized extensions, encoder parameters, quality tiers,
  timeouts and the diagnostic signatures used to classify ffmpeg failures.
- `EncoderSettings`, the frozen settings structure passed to every component.
"""
