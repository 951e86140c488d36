"""
Permission-gated view of a customer for shareable links.

Each permission flag unlocks one group of fields. A group whose flag is off is
left out of the view entirely; nothing is masked or nulled.
"""
import logging
from typing import Any, Dict, List
from tellus_crm.models.customer import Customer
from tellus_crm.models.shareable_link import ShareableLink
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)

# flag -> [(response key, customer attribute)]
FIELD_GROUPS = {
    "viewPersonalData": [
        ("name", "name"),
        ("cpf", "cpf"),
        ("email", "email"),
        ("phone", "phone"),
        ("birthDate", "birth_date"),
        ("maritalStatus", "marital_status"),
    ],
    "viewAddress": [
        ("address", "address"),
    ],
    "viewFinancialData": [
        ("profession", "profession"),
        ("employmentType", "employment_type"),
        ("monthlyIncome", "monthly_income"),
        ("companyName", "company_name"),
        ("propertyValue", "property_value"),
        ("propertyType", "property_type"),
    ],
    "viewNotes": [
        ("notes", "notes"),
    ],
}


def shared_documents(link: ShareableLink, customer: Customer) -> List[dict]:
    """
    Customer documents selected for the link, in the order they were selected.

    Documents deleted after the link was created are skipped.
    """
    shared = []
    for document_id in link.document_ids:
        document = customer.find_document(document_id)
        if document is None:
            logger.info(
                sanitize_log_message(
                    "Shared document no longer attached to customer",
                    LinkID=link.id[:8],
                    DocumentID=document_id
                )
            )
            continue
        shared.append({
            "id": document["id"],
            "fileName": document.get("fileName"),
            "fileType": document.get("fileType"),
            "documentType": document.get("documentType"),
            "uploadedAt": document.get("uploadedAt"),
            "customTitle": document.get("customTitle"),
        })
    return shared


def project_customer(link: ShareableLink, customer: Customer) -> Dict[str, Any]:
    """Build the customer view a link holder is allowed to see."""
    view: Dict[str, Any] = {"id": customer.id}
    for flag, fields in FIELD_GROUPS.items():
        if link.allows(flag):
            for key, attribute in fields:
                view[key] = getattr(customer, attribute)
    if link.allows("viewDocuments"):
        view["uploadedDocuments"] = shared_documents(link, customer)
    return view
