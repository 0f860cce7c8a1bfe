"""
Document Binder - Entity Bindings for One Document Version.

Binds every entity mention, pronoun reference and obligation party of a
document against that document's own hole registry. Mentions carrying a
coreference chain become Resolved bindings; the rest become Holes.
"""

from src.ingestion.schemas import Annotation, AnnotationType, Document, Section
from src.knowledge.hole_registry import HoleRegistry
from src.knowledge.schemas import EntityBinding, HoleBinding, MentionOccurrence, ResolvedBinding
from src.utils.logger import get_logger
from src.utils.text import normalize_mention

logger = get_logger(__name__)

PARTY_ROLES = ("obligor", "beneficiary")


class DocumentBindings:
    """Bindings of one document, looked up by mention text or by section."""

    def __init__(self, document_key: str) -> None:
        self.document_key = document_key
        self._by_text: dict[str, EntityBinding] = {}
        self._by_section: dict[str, list[EntityBinding]] = {}

    def add(self, section_id: str, binding: EntityBinding, text: str | None = None) -> None:
        if text is not None:
            self._by_text.setdefault(normalize_mention(text), binding)
        section_bindings = self._by_section.setdefault(section_id, [])
        if all(existing.ref != binding.ref for existing in section_bindings):
            section_bindings.append(binding)

    def lookup(self, text: str) -> EntityBinding | None:
        return self._by_text.get(normalize_mention(text))

    def for_section(self, section_id: str) -> list[EntityBinding]:
        return list(self._by_section.get(section_id, []))

    def all(self) -> list[EntityBinding]:
        seen: dict[str, EntityBinding] = {}
        for bindings in self._by_section.values():
            for binding in bindings:
                seen.setdefault(binding.ref, binding)
        return list(seen.values())

    def __len__(self) -> int:
        return len(self.all())


class DocumentBinder:
    """
    Bind a document's mentions against its document-scoped registry.

    Usage:
        registry = HoleRegistry.for_document(document.owner_key)
        bindings = DocumentBinder(registry).bind(document)
        vendor = bindings.lookup("the Vendor")
    """

    def __init__(self, registry: HoleRegistry) -> None:
        self.registry = registry

    def bind(self, document: Document) -> DocumentBindings:
        """
        Bind all mentions of a document.

        Chain-linked mentions are bound first so that an unlinked mention
        with the same text reuses the resolved identity.
        """
        bindings = DocumentBindings(document.owner_key)

        for section in document.sections:
            for mention in section.find(AnnotationType.ENTITY_MENTION):
                if mention.attr("chain_id"):
                    bindings.add(section.section_id, _resolved(mention), mention.text)

        for section in document.sections:
            for mention in section.find(AnnotationType.ENTITY_MENTION):
                if not mention.attr("chain_id"):
                    self._bind_text(bindings, document, section, mention.text, mention)

        for section in document.sections:
            for pronoun in section.find(AnnotationType.PRONOUN_REFERENCE):
                if pronoun.attr("chain_id"):
                    bindings.add(section.section_id, _resolved(pronoun))
                    continue
                antecedent = pronoun.attr("antecedent")
                if antecedent:
                    self._bind_text(bindings, document, section, antecedent, pronoun, record_text=False)

        for section in document.sections:
            for obligation in section.find(AnnotationType.OBLIGATION):
                for role in PARTY_ROLES:
                    name = obligation.attr(role)
                    if name:
                        self._bind_text(bindings, document, section, name, obligation)

        logger.debug(f"Bound {len(bindings)} parties in {document.owner_key} ({len(self.registry)} holes)")
        return bindings

    def _bind_text(
        self,
        bindings: DocumentBindings,
        document: Document,
        section: Section,
        text: str,
        annotation: Annotation,
        record_text: bool = True,
    ) -> EntityBinding | None:
        if not normalize_mention(text):
            return None
        binding = bindings.lookup(text)
        if binding is None or isinstance(binding, HoleBinding):
            occurrence = MentionOccurrence(
                document_key=document.owner_key,
                section_id=section.section_id,
                start=annotation.start,
                end=annotation.end,
                text=text,
            )
            hole_id = self.registry.resolve_or_create(text, occurrence)
            binding = self.registry.binding_for(hole_id)
        bindings.add(section.section_id, binding, text if record_text else None)
        return binding


def _resolved(annotation: Annotation) -> ResolvedBinding:
    return ResolvedBinding(
        chain_id=str(annotation.attr("chain_id")),
        canonical_name=str(annotation.attr("canonical_name") or annotation.text),
        verified=bool(annotation.attr("verified", True)),
    )
