from django.db import models
from django.utils import timezone


class Record(models.Model):
    """A named value kept in the vault."""

    name = models.TextField()
    value = models.TextField()
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.name} (#{self.pk})"
