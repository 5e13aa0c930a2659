"""Document reference resolution for document-gated checklist items.

A documentRef is only accepted when the document exists in the caller's
tenant and belongs to the customer the checklist instance is bound to.
"""

from __future__ import annotations

import logging

from onboarding.core.context import ChecklistContext
from onboarding.core.exceptions import DocumentRequiredError
from onboarding.models.customer import CustomerDocument
from onboarding.services.helpers.scoped_queries import get_scoped_or_none

logger = logging.getLogger(__name__)


def resolve_document(
    ctx: ChecklistContext,
    customer_id: str,
    document_ref: str | None,
    *,
    item_id: str,
) -> CustomerDocument:
    """Return the referenced document or raise DocumentRequiredError."""
    if not document_ref:
        raise DocumentRequiredError(item_id)

    document = get_scoped_or_none(
        CustomerDocument, document_ref, tenant_id=ctx.tenant_id, customer_id=customer_id,
    )
    if document is None:
        logger.info(
            "Document ref rejected tenant_id=%s customer_id=%s document_ref=%s",
            ctx.tenant_id, customer_id, document_ref,
        )
        raise DocumentRequiredError(item_id, document_ref)
    return document
