from sqlalchemy import Column, Integer, String, Float, Text, JSON
from tellus_crm.database import Base
from tellus_crm.models.mixins import TimestampMixin


class Customer(TimestampMixin, Base):
    """
    Customer model.

    Uploaded documents are embedded as a JSON array of metadata dicts
    (id is the storage key). Reassign the list on change so the ORM sees it.
    """

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)

    # Personal data
    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    phone = Column(String, nullable=False)
    cpf = Column(String(11), unique=True, nullable=False, index=True)
    birth_date = Column(String(10), nullable=True)  # YYYY-MM-DD
    marital_status = Column(String, nullable=True)

    # Address: {street, number, complement, neighborhood, city, state, zipCode}
    address = Column(JSON, nullable=True)

    # Financial data
    profession = Column(String, nullable=True)
    employment_type = Column(String, nullable=True)
    monthly_income = Column(Float, nullable=True)
    company_name = Column(String, nullable=True)
    property_value = Column(Float, nullable=True)
    property_type = Column(String, nullable=True)

    notes = Column(Text, nullable=True)
    uploaded_documents = Column(JSON, nullable=False, default=list)

    def find_document(self, document_id: str):
        """Return the embedded document with the given id, or None."""
        for document in self.uploaded_documents or []:
            if document.get("id") == document_id:
                return document
        return None
