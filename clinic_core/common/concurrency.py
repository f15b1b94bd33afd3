# clinic_core/common/concurrency.py
from __future__ import annotations

from typing import Iterable

from django.db.models import F
from django.utils import timezone

from clinic_core.common.exceptions import StaleVersion


def save_versioned(instance, *, fields: Iterable[str]) -> None:
    """
    Compare-and-swap write for VersionedModel rows.

    Writes `fields` only if the stored version still equals `instance.version`,
    then bumps it. Raises StaleVersion when another writer got there first.
    """
    model = type(instance)
    now = timezone.now()

    values = {name: getattr(instance, name) for name in fields}
    if hasattr(instance, "updated_at"):
        values["updated_at"] = now

    updated = model.objects.filter(pk=instance.pk, version=instance.version).update(
        version=F("version") + 1,
        **values,
    )
    if not updated:
        raise StaleVersion()

    instance.version += 1
    if "updated_at" in values:
        instance.updated_at = now
