"""Append-only audit trail for mutating API commands.

Entries are keyed by the model label of the affected row (``core.branch``,
``inventory.inventorytransaction``) and carry JSON snapshots taken from the
serializers the API already returns.
"""

import json

from django.core.serializers.json import DjangoJSONEncoder

from core.models import AuditLog


def get_request_id(request):
    return getattr(request, "request_id", None) or request.headers.get("X-Request-ID")


def entity_label(instance):
    return instance._meta.label_lower


def _to_json(snapshot):
    if snapshot is None:
        return None
    return json.loads(json.dumps(snapshot, cls=DjangoJSONEncoder))


def record_audit(*, action, instance, actor=None, branch=None, before=None, after=None, request_id=None):
    return AuditLog.objects.create(
        actor=actor,
        branch=branch,
        action=action,
        entity=entity_label(instance),
        entity_id=str(instance.pk),
        before_snapshot=_to_json(before),
        after_snapshot=_to_json(after),
        request_id=request_id,
    )


def audit_request(request, action, instance, *, branch=None, before=None, after=None):
    user = getattr(request, "user", None)
    return record_audit(
        action=action,
        instance=instance,
        actor=user if user is not None and user.is_authenticated else None,
        branch=branch,
        before=before,
        after=after,
        request_id=get_request_id(request),
    )
