"""Document existence check."""

from dataclasses import dataclass
from typing import Optional

from api.config.settings import settings
from api.integrations.base import LookupClient

RESUME_TYPES = {"RESUME", "CV"}
COVER_LETTER_TYPES = {"COVER_LETTER", "COVERLETTER", "LETTER"}


@dataclass
class Document:
    id: int
    document_type: Optional[str] = None
    filename: Optional[str] = None
    candidate_id: Optional[str] = None

    @property
    def is_resume(self) -> bool:
        # Untyped documents are accepted as resumes
        return self.document_type is None or self.document_type.upper() in RESUME_TYPES

    @property
    def is_cover_letter(self) -> bool:
        return self.document_type is not None and self.document_type.upper() in COVER_LETTER_TYPES


class DocumentClient(LookupClient):
    """Confirms documents exist in the document service."""

    service_name = "document-service"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or settings.DOCUMENT_SERVICE_URL, **kwargs)

    async def get_document(self, document_id: int) -> Document:
        """Fetch document metadata.

        Raises:
            NotFoundError: If the document does not exist
            DownstreamUnavailableError: If the service cannot be reached
        """
        data = await self._get_json(f"/documents/{document_id}", "Document", document_id)
        return Document(
            id=int(data.get("id") or document_id),
            document_type=data.get("documentType") or data.get("type"),
            filename=data.get("fileName") or data.get("filename"),
            candidate_id=data.get("candidateId"),
        )
