"""
Dispute letter products: catalog, pricing, validation and letter assembly.
"""
from core.disputes.letter_generator import DisputeForm, EnhancedLetter, generate_enhanced_letter
from core.disputes.pricing import calculate_price, price_table, product_name
from core.disputes.validation import validate_dispute_form

__all__ = [
    "DisputeForm",
    "EnhancedLetter",
    "generate_enhanced_letter",
    "calculate_price",
    "price_table",
    "product_name",
    "validate_dispute_form",
]
