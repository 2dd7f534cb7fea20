# ===============================================================================
# CURRENCY FORMS
# ===============================================================================

from __future__ import annotations

from typing import ClassVar

from django import forms

from .models import Currency


class CurrencyAdminForm(forms.ModelForm):
    """
    Admin form for currencies.
    The single-default constraint is enforced by CurrencyService.save, which
    clears the previous default in the same transaction, so the form must not
    reject a new default before the service gets to run.
    """

    class Meta:
        model = Currency
        fields = "__all__"
        help_texts: ClassVar[dict[str, str]] = {
            "is_default": "Checking this moves the default flag from the current default currency.",
        }

    def _get_validation_exclusions(self) -> set[str]:
        exclude = super()._get_validation_exclusions()
        exclude.add("is_default")
        return exclude
