"""
Skin Biometrics

A system for scoring facial skin health from ordinary camera frames and
keeping successive scans of the same subject consistent with each other.

Modules:
    utils: Color model, face localization, region normalization, metric
        algorithms, aggregation, stabilization, quality gate and refinement
    models: Frames, metric records, scan history and refinement schemas
    config: Environment-driven settings
"""

__version__ = '1.0.0'
