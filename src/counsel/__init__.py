"""
Counsel - Entity resolution for admission-counselling records

Reconciles noisy OCR-extracted fields (colleges, programs, quotas,
categories, states) against a canonical reference dataset:
- Normalizes text and corrects known OCR errors
- Expands names into abbreviation and short-form variations
- Runs independent matching strategies in parallel
- Fuses strategy outputs into one ranked, confidence-scored answer
"""

__version__ = "0.1.0"
