"""
This package contains the core domain models of the batch encoder.

The domain layer holds the concepts the pipeline reasons about, independent of
ffmpeg, the filesystem layout and the CLI.

Modules:
    exceptions.py: Custom exception types, one per failure class of the
                   per-candidate pipeline.
    media.py: The immutable `MediaFile` record built from ffprobe output.
    encode_state.py: The per-candidate state machine: states, events, ledger
                     dispositions and the pure transition function.
    temp_models.py: `EncodingTask`, `EstimationResult` and `RunSummary`, the
                    transient records of one batch run.
"""
