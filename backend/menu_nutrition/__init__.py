"""
Menu nutrition resolution engine.
Noisy menu-item text -> normalized terms -> tiered nutrition sources -> cached, confidence-annotated ranges.
"""
