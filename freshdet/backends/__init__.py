"""
Model executors for freshdet.

Backends live in a separate package so pre/post-processing stays importable
without an inference runtime installed. Each backend loads its model in the
constructor (raising ModelLoadError) and exposes `infer(blob) -> np.ndarray`
(raising InferenceError).
"""

from __future__ import annotations

__all__ = []
