import typing as t

from django.db import IntegrityError, models, transaction

M = t.TypeVar("M", bound=models.Model)


def upsert_unique(model: type[M], lookup: dict[str, t.Any], values: dict[str, t.Any]) -> tuple[M, bool]:
    """Write ``values`` onto the row matching ``lookup``, inserting the row when there is none.

    ``lookup`` must cover a unique constraint of ``model``. The insert runs in a savepoint: when a
    concurrent request inserts first, the IntegrityError is absorbed and the values are written
    onto the winner's row instead.

    Returns the row and whether it was inserted.
    """
    manager: models.Manager[M] = getattr(model, "objects")
    if not manager.filter(**lookup).exists():
        try:
            with transaction.atomic():
                return manager.create(**lookup, **values), True
        except IntegrityError:
            if not manager.filter(**lookup).exists():
                raise

    instance = manager.get(**lookup)
    for field, value in values.items():
        setattr(instance, field, value)
    update_fields = list(values)
    if hasattr(instance, "updated_at"):
        update_fields.append("updated_at")
    instance.save(update_fields=update_fields)
    return instance, False
