# file: tiss_editor/xml_model.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Union
from xml.sax.saxutils import quoteattr

from lxml import etree

from .errors import TissParsingError, TissSecurityError

logger = logging.getLogger(__name__)

# Namespaces TISS
ANS_URI = 'http://www.ans.gov.br/padroes/tiss/schemas'
XSI_URI = 'http://www.w3.org/2001/XMLSchema-instance'
XML_URI = 'http://www.w3.org/XML/1998/namespace'
DEFAULT_SCHEMA_LOCATION = f'{ANS_URI} tissV4_01_00.xsd'

ROOT_TAG = 'ans:mensagemTISS'

# Elementos repetitivos: sempre tratados como lista, mesmo com 0 ou 1 ocorrência
GUIDE_TAGS = ('ans:guiaSP-SADT', 'guiaSP-SADT')

ATTRIBUTE_PREFIX = '@_'
TEXT_KEY = '#text'

DEFAULT_ENCODING = 'UTF-8'

# nome canônico -> codec Python
ENCODINGS: Dict[str, str] = {
    'ISO-8859-1': 'iso-8859-1',
    'UTF-8': 'utf-8',
    'Windows-1252': 'cp1252',
}

_ENCODING_ALIASES = {
    'ISO-8859-1': 'ISO-8859-1',
    'ISO8859-1': 'ISO-8859-1',
    'ISO_8859-1': 'ISO-8859-1',
    'LATIN1': 'ISO-8859-1',
    'LATIN-1': 'ISO-8859-1',
    'UTF-8': 'UTF-8',
    'UTF8': 'UTF-8',
    'WINDOWS-1252': 'Windows-1252',
    'CP1252': 'Windows-1252',
}

_DECLARATION_RE = re.compile(r'^\s*<\?xml\b[^>]*\?>', re.IGNORECASE)
_ENCODING_RE = re.compile(r'<\?xml\b[^>]*?\bencoding\s*=\s*["\']([A-Za-z0-9._-]+)["\']', re.IGNORECASE)

# Atributos de namespace que às vezes chegam "corrompidos" como elementos filhos
_ROOT_NAMESPACE_ATTRIBUTES = ('xmlns:xsi', 'xmlns:ans', 'xsi:schemaLocation')

# Mesmos atributos no texto, como elementos: <xsi:schemaLocation>...</xsi:schemaLocation> ou <@_xmlns:ans/>
_PSEUDO_NAMESPACE_RE = re.compile(
    r'<(?:@_)?(xmlns:xsi|xmlns:ans|xsi:schemaLocation)\s*>(.*?)</(?:@_)?\1\s*>'
    r'|<(?:@_)?(?:xmlns:xsi|xmlns:ans|xsi:schemaLocation)\s*/>',
    re.S,
)
_ROOT_START_RE = re.compile(r'<(?![?!/])[A-Za-z_][\w:.-]*([^>]*?)/?>')


class SerializeMode(str, Enum):
    COMPACT = 'compact'   # sem espaços inseridos: hash e envio TISS
    PRETTY = 'pretty'     # indentado: somente leitura/edição humana


class ParseStatus(str, Enum):
    OK = 'ok'
    DEGRADED = 'degraded'
    REJECTED = 'rejected'


# ----------------------------
# Modelo
# ----------------------------
@dataclass
class Text:
    value: str


@dataclass
class Element:
    name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List[Union['Element', Text]] = field(default_factory=list)

    @property
    def local_name(self) -> str:
        return local_name(self.name)

    @property
    def value(self) -> str:
        """Texto direto do elemento (sem descer nos filhos)."""
        return ''.join(c.value for c in self.children if isinstance(c, Text))

    def elements(self) -> Iterator['Element']:
        for child in self.children:
            if isinstance(child, Element):
                yield child

    def find_all(self, name: str) -> List['Element']:
        return [c for c in self.elements() if c.name == name]

    def find(self, name: str) -> Optional['Element']:
        return next((c for c in self.elements() if c.name == name), None)

    def iter(self) -> Iterator['Element']:
        """Percorre o elemento e todos os descendentes (pré-ordem)."""
        yield self
        for child in self.elements():
            yield from child.iter()

    def set_value(self, value: str) -> None:
        self.children = [Text(value)] if value else []


@dataclass
class Document:
    root: Element
    encoding: str = DEFAULT_ENCODING


@dataclass
class ParseOutcome:
    status: ParseStatus
    document: Optional[Document] = None
    reason: str = ''

    @property
    def ok(self) -> bool:
        return self.status is ParseStatus.OK


# ----------------------------
# Helpers
# ----------------------------
def local_name(name: str) -> str:
    return name.split(':', 1)[1] if ':' in name else name


def name_variants(tag: str) -> tuple[str, str]:
    """('ans:tag', 'tag') para busca tolerante a prefixo."""
    local = local_name(tag)
    return (f'ans:{local}', local)


def detect_encoding(text: str) -> str:
    """
    Encoding declarado no cabeçalho XML (ISO-8859-1, UTF-8, Windows-1252).
    Sem declaração (ou declaração desconhecida) => UTF-8.
    """
    m = _ENCODING_RE.search(text[:500])
    if not m:
        return DEFAULT_ENCODING
    declared = m.group(1).upper()
    encoding = _ENCODING_ALIASES.get(declared)
    if encoding is None:
        logger.warning("Encoding declarado '%s' não suportado; usando %s.", m.group(1), DEFAULT_ENCODING)
        return DEFAULT_ENCODING
    return encoding


def codec_for(encoding: str) -> str:
    return ENCODINGS.get(encoding, 'utf-8')


def check_security(text: str) -> None:
    """Recusa documentos com <!DOCTYPE> + <!ENTITY> (risco de expansão de entidades)."""
    if '<!DOCTYPE' in text and '<!ENTITY' in text:
        logger.error("Documento recusado: contém definições de entidades (<!DOCTYPE> + <!ENTITY>).")
        raise TissSecurityError(
            'O arquivo contém definições de entidades que não são permitidas por questões de segurança.'
        )


def find_nested_value(element: Element, names: Sequence[str]) -> Optional[str]:
    """
    Busca recursiva "primeiro que casar": olha os filhos diretos por qualquer
    um dos nomes e só então desce nos filhos, na ordem do documento.
    """
    for name in names:
        for child in element.elements():
            if child.name == name:
                return child.value
    for child in element.elements():
        found = find_nested_value(child, names)
        if found is not None:
            return found
    return None


def tag_exists(element: Element, names: Sequence[str], include_self: bool = False) -> bool:
    if include_self and element.name in names:
        return True
    return any(el.name in names for el in element.iter() if el is not element)


def find_guides(element: Element) -> List[Element]:
    """Todas as guias (ans:guiaSP-SADT ou guiaSP-SADT) em qualquer nível, na ordem do documento."""
    found: List[Element] = []
    for child in element.elements():
        if child.name in GUIDE_TAGS:
            found.append(child)
        else:
            found.extend(find_guides(child))
    return found


# ----------------------------
# Parse (lxml -> Element/Text)
# ----------------------------
def _make_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        remove_blank_text=True,
        remove_comments=True,
        remove_pis=True,
    )


def _qualified(clark: str, prefix: Optional[str]) -> str:
    if not clark.startswith('{'):
        # sem namespace
        return clark
    local = etree.QName(clark).localname
    return f'{prefix}:{local}' if prefix else local


def _attribute_name(key: str, nsmap: Dict[Optional[str], str]) -> str:
    if not key.startswith('{'):
        return key
    qn = etree.QName(key)
    if qn.namespace == XML_URI:
        return f'xml:{qn.localname}'
    for prefix, uri in nsmap.items():
        if prefix and uri == qn.namespace:
            return f'{prefix}:{qn.localname}'
    return qn.localname


def _from_lxml(el: etree._Element, parent_nsmap: Dict[Optional[str], str]) -> Element:
    attributes: Dict[str, str] = {}
    for prefix, uri in el.nsmap.items():
        if parent_nsmap.get(prefix) != uri:
            attributes[f'xmlns:{prefix}' if prefix else 'xmlns'] = uri
    for key, value in el.attrib.items():
        attributes[_attribute_name(key, el.nsmap)] = value

    children: List[Union[Element, Text]] = []
    if el.text and el.text.strip():
        children.append(Text(el.text.strip()))
    for child in el:
        if isinstance(child.tag, str):
            children.append(_from_lxml(child, el.nsmap))
        if child.tail and child.tail.strip():
            children.append(Text(child.tail.strip()))
    return Element(_qualified(el.tag, el.prefix), attributes, children)


def _declare_root_namespaces(body: str) -> str:
    """
    Reescreve a tag de abertura da raiz com as declarações TISS que faltam
    (xmlns:ans, xmlns:xsi, xsi:schemaLocation) e retira as pseudo-tags de
    namespace do corpo. Devolve o texto inalterado quando não há o que declarar.
    """
    found: Dict[str, str] = {}

    def _collect(m: re.Match) -> str:
        if m.group(1):
            found.setdefault(m.group(1), m.group(2).strip())
        return ''

    body = _PSEUDO_NAMESPACE_RE.sub(_collect, body)
    m = _ROOT_START_RE.search(body)
    if not m:
        return body
    attrs = m.group(1)
    location = found.get('xsi:schemaLocation')
    if re.search(r'\bxsi:schemaLocation\s*=', attrs):
        location = None

    extra = []
    for prefix, uri in (('ans', ANS_URI), ('xsi', XSI_URI)):
        if re.search(rf'\bxmlns:{prefix}\s*=', attrs):
            continue
        used = re.search(rf'</?{prefix}:', body) or re.search(rf'\s{prefix}:[\w.-]+\s*=', attrs)
        if used or (prefix == 'xsi' and location):
            extra.append(f' xmlns:{prefix}={quoteattr(uri)}')
    if location:
        extra.append(f' xsi:schemaLocation={quoteattr(location)}')
    return body[:m.end(1)] + ''.join(extra) + body[m.end(1):]


def parse_document(text: str) -> ParseOutcome:
    """
    Converte o texto XML na árvore estrutural.
    Nunca levanta exceção: devolve OK / DEGRADED (XML malformado) / REJECTED (segurança).

    Prefixos ans:/xsi: sem declaração (ou declarações "corrompidas" em
    pseudo-tags) são reparados na raiz antes de desistir do parse.
    """
    try:
        check_security(text)
    except TissSecurityError as e:
        return ParseOutcome(ParseStatus.REJECTED, reason=str(e))

    encoding = detect_encoding(text)
    body = _DECLARATION_RE.sub('', text.lstrip('\ufeff'), count=1)
    try:
        root = etree.fromstring(body, _make_parser())
    except (etree.XMLSyntaxError, ValueError) as e:
        repaired = _declare_root_namespaces(body)
        if repaired == body:
            logger.warning('Falha ao parsear XML: %s', e)
            return ParseOutcome(ParseStatus.DEGRADED, reason=str(e) or 'documento vazio')
        try:
            root = etree.fromstring(repaired, _make_parser())
        except (etree.XMLSyntaxError, ValueError):
            logger.warning('Falha ao parsear XML: %s', e)
            return ParseOutcome(ParseStatus.DEGRADED, reason=str(e))
        logger.warning('Declarações de namespace ausentes na raiz foram reparadas (%s)', e)

    return ParseOutcome(ParseStatus.OK, Document(_from_lxml(root, {}), encoding))


def parse(text: str) -> Document:
    outcome = parse_document(text)
    if outcome.status is ParseStatus.REJECTED:
        raise TissSecurityError(outcome.reason)
    if not outcome.ok:
        raise TissParsingError(outcome.reason)
    return outcome.document


# ----------------------------
# Serialize (Element/Text -> lxml -> texto)
# ----------------------------
def _repair_root(root: Element) -> Element:
    """Reanexa xmlns:xsi, xmlns:ans e xsi:schemaLocation na raiz TISS."""
    if root.local_name != 'mensagemTISS':
        return root

    attributes = dict(root.attributes)
    children: List[Union[Element, Text]] = []
    for child in root.children:
        if isinstance(child, Element):
            name = child.name
            if name.startswith(ATTRIBUTE_PREFIX):
                name = name[len(ATTRIBUTE_PREFIX):]
            if name in _ROOT_NAMESPACE_ATTRIBUTES:
                if name == 'xsi:schemaLocation' and child.value:
                    attributes.setdefault(name, child.value)
                continue
        children.append(child)

    attributes['xmlns:xsi'] = XSI_URI
    attributes['xmlns:ans'] = ANS_URI
    if not attributes.get('xsi:schemaLocation'):
        attributes['xsi:schemaLocation'] = DEFAULT_SCHEMA_LOCATION
    return replace(root, attributes=attributes, children=children)


def _clark(name: str, scope: Dict[Optional[str], str], is_attribute: bool = False) -> str:
    if ':' in name:
        prefix, local = name.split(':', 1)
        if prefix == 'xml':
            return f'{{{XML_URI}}}{local}'
        uri = scope.get(prefix)
        if uri is None:
            raise TissParsingError(f"Prefixo de namespace '{prefix}' não declarado em '{name}'.")
        return f'{{{uri}}}{local}'
    if not is_attribute and scope.get(None):
        return f'{{{scope[None]}}}{name}'
    return name


def _to_lxml(element: Element, parent: Optional[etree._Element], scope: Dict[Optional[str], str]) -> etree._Element:
    declarations: Dict[Optional[str], str] = {}
    for key, value in element.attributes.items():
        if key == 'xmlns':
            declarations[None] = value
        elif key.startswith('xmlns:'):
            declarations[key[len('xmlns:'):]] = value
    scope = {**scope, **declarations}

    tag = _clark(element.name, scope)
    if parent is None:
        el = etree.Element(tag, nsmap=declarations or None)
    else:
        el = etree.SubElement(parent, tag, nsmap=declarations or None)

    for key, value in element.attributes.items():
        if key == 'xmlns' or key.startswith('xmlns:'):
            continue
        el.set(_clark(key, scope, is_attribute=True), value)

    last: Optional[etree._Element] = None
    for child in element.children:
        if isinstance(child, Text):
            if last is None:
                el.text = (el.text or '') + child.value
            else:
                last.tail = (last.tail or '') + child.value
        else:
            last = _to_lxml(child, el, scope)
    return el


def serialize(document: Document, mode: SerializeMode = SerializeMode.COMPACT) -> str:
    pretty = SerializeMode(mode) is SerializeMode.PRETTY
    root = _to_lxml(_repair_root(document.root), None, {})
    body = etree.tostring(root, encoding='unicode', pretty_print=pretty)
    declaration = f'<?xml version="1.0" encoding="{document.encoding}"?>'
    return declaration + ('\n' if pretty else '') + body


def format_xml(text: str) -> str:
    """Versão indentada para exibição; XML malformado volta como veio."""
    outcome = parse_document(text)
    if not outcome.ok:
        return text
    return serialize(outcome.document, SerializeMode.PRETTY)


def rebuild_xml(text: str) -> str:
    """Reconstrói o XML em formato compacto (formato de envio TISS)."""
    outcome = parse_document(text)
    if not outcome.ok:
        return text
    return serialize(outcome.document, SerializeMode.COMPACT)


# ----------------------------
# Visão em dicionário (exibição)
# ----------------------------
def to_mapping(element: Element) -> Dict:
    """
    Visão em dicionário do elemento: atributos com prefixo '@_', texto em '#text'.
    Guias são sempre listas, mesmo com uma única ocorrência.
    """
    out: Dict = {f'{ATTRIBUTE_PREFIX}{k}': v for k, v in element.attributes.items()}
    children = list(element.elements())
    if not children:
        if not out:
            return {element.name: element.value}
        if element.value:
            out[TEXT_KEY] = element.value
        return {element.name: out}

    if element.value:
        out[TEXT_KEY] = element.value
    for child in children:
        value = to_mapping(child)[child.name]
        if child.name in GUIDE_TAGS:
            out.setdefault(child.name, []).append(value)
        elif child.name in out:
            if not isinstance(out[child.name], list):
                out[child.name] = [out[child.name]]
            out[child.name].append(value)
        else:
            out[child.name] = value
    return {element.name: out}
