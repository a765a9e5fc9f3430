"""
Achalasia Cardia AI - Diagnostic Report Pipeline

Sends a medical image to an external vision model, turns its answer into a
structured assessment and exports it as a paginated PDF report.

IMPORTANT: Output is AI-assisted reference material, not a medical diagnosis.
"""

__version__ = "1.0.0"
__author__ = "Achalasia Cardia AI Team"
