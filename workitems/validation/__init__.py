"""Validation package."""

from workitems.validation.validator import PromotionValidator

__all__ = ["PromotionValidator"]
