"""
This package contains the batch pipeline.

`StandardVideoPipeline` discovers candidates, walks the queue in order under
the wall-clock `TimeBudget`, and hands each file to the encode orchestrator.
"""
