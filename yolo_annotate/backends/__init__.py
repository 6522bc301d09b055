"""
Inference adapters: anything exposing `infer(blob) -> output` for a
(1, 3, S, S) float32 blob. Imported lazily so decoding and drawing work
without an inference runtime installed.
"""
