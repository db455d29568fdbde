"""
Content validators.

Validators gate what a content source may return. Combine them with
AllValidator (AND) and AnyValidator (OR).
"""
from validation.base import Validator
from validation.text import (
    RegexMatchValidator, RegexNoMatchValidator, KeywordValidator,
    LengthValidator, JsonValidator,
)
from validation.composite import AllValidator, AnyValidator
from validation.custom import CustomValidator
