"""
Services Package for the batch encoder.

This package contains the "service layer" of the application. A service is a
class, or a small set of functions, that performs one high-level task. The
pipeline coordinates them; the domain package holds the data they exchange.

- **Ledger Service (`Ledger`, `LedgerStore`):**
  Reads and appends the per-directory `encoded.list` and `failed.list` files.

- **Probe Service (`MediaProber`):**
  Reads codec, size, resolution and duration through ffprobe.

- **Encoder Service (`FfmpegEncoder`, `classify_encode_result`):**
  Builds and runs the ffmpeg commands and classifies their outcome.

- **Estimation Service (`SizeEstimator`):**
  Predicts the re-encoded size from three short sample encodes.

- **File Processing Service (`CandidateFilter`):**
  Discovers video files and applies the exclusion predicates.

- **Encode Orchestrator (`EncodeOrchestrator`):**
  Drives a candidate through the state machine and performs its side effects.

- **Logging Service (`ErrorLog`):**
  Appends the ffmpeg diagnostics of failures to a plain text file.
"""
