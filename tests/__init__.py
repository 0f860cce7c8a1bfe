"""
Test suite for the Contract Comparison Engine.

Organized by module:
- test_ingestion.py - Tokenizer, annotations and document integrity
- test_token_diff.py - Token alignment and whitespace modes
- test_section_aligner.py - Section cover, hints, splits and merges
- test_hole_registry.py - Hole allocation, union-find and snapshots
- test_entity_matcher.py - Party binding and cross-document matching
- test_match_classifier.py - Three-zone classification
- test_semantic_diff.py - Typed changes, risk and confidence
- test_hierarchy.py - Diff tree views
- test_comparator.py - End-to-end comparisons and resolutions
- test_config.py - Settings validation
"""

# Test fixtures are provided in conftest.py
