from tortoise import fields
from tortoise.models import Model


class StoredResource(Model):
    """A SCIM resource persisted as its normalized JSON document."""
    id = fields.CharField(max_length=64, pk=True)
    resource_type = fields.CharField(max_length=255, index=True)
    revision = fields.IntField(default=1)
    document = fields.JSONField()

    # Timestamps
    created = fields.DatetimeField(auto_now_add=True)
    modified = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "scim_resources"

    def __str__(self):
        return f"{self.resource_type}/{self.id}"
