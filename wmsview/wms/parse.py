# This file is part of the WMSView project.
# Copyright (C) 2026 The WMSView developers
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Streaming parser for WMS capabilities documents.

The document is read once with `lxml.etree.iterparse`. The parsers are
small state machines that react on start/end events and fill a
`ServiceBuilder`. Each ``<Layer>`` element is handled by its own
`LayerParser` that reads from the same event stream.
"""
import re
from io import BytesIO

from lxml import etree

from wmsview.wms import ServiceBuilder, ProtocolVersion
from wmsview.wms.request import capabilities_url, service_address
from wmsview.wms.exceptions import (
    MalformedStreamError,
    WrongRootTagError,
    VersionNotQuotedError,
    VersionNotSupportedError,
    NoImageFormatsError,
    LeafWithoutNameError,
    NoRootLayerError,
    NoGlobalCRSError,
    InvalidMaxWidthError,
    InvalidMaxHeightError,
    NotXMLDocumentError,
)

import logging
log = logging.getLogger('wmsview.capabilities')

XML_CONTENT_TYPES = (
    'application/vnd.ogc.wms_xml',
    'application/xml',
    'text/xml',
)

ROOT_TAGS = ('WMS_Capabilities', 'WMT_MS_Capabilities')

# root, service/capability, title/abstract/max size/request,
# getmap, format, obsolete format
MAX_STACK_DEPTH = 6

CAPABILITIES = 'capabilities'
SERVICE = 'service'
CAPABILITY = 'capability'
TITLE = 'title'
ABSTRACT = 'abstract'
MAX_WIDTH = 'max_width'
MAX_HEIGHT = 'max_height'
REQUEST = 'request'
GET_MAP = 'get_map'
FORMAT = 'format'
OBSOLETE_FORMAT = 'obsolete_format'

_natural_number_re = re.compile(r'^[0-9]+$')


def local_name(elem):
    return etree.QName(elem).localname


class XMLParser(object):
    """
    Base of the event driven parsers. `parse` dispatches the events
    until the parser stops itself.
    """
    def __init__(self):
        self.running = True
        self.events = None

    def parse(self, events, service):
        self.events = events
        self.initialize(service)
        try:
            for event, elem in events:
                tag = local_name(elem)
                if event == 'start':
                    self.parse_start(tag, elem)
                else:
                    text = elem.text
                    if text is not None:
                        text = text.strip()
                    if text:
                        self.parse_text(text)
                    self.parse_end(tag, elem)
                    elem.clear()
                if not self.running:
                    break
            else:
                raise MalformedStreamError('Unexpected end of document!')
        finally:
            self.finalize()

    def initialize(self, service):
        pass

    def finalize(self):
        pass

    def parse_start(self, tag, elem):
        raise NotImplementedError()

    def parse_text(self, text):
        raise NotImplementedError()

    def parse_end(self, tag, elem):
        raise NotImplementedError()


class CapabilitiesParser(XMLParser):
    """
    Parses the service information, the supported image formats and
    delegates the top-level ``<Layer>`` to a `LayerParser`.

    `stack` holds the meaning of the open element for each depth.
    """
    def initialize(self, service):
        self.service = service
        self.stack = [None] * MAX_STACK_DEPTH
        self.depth = 0

    def finalize(self):
        self.events = None

    def parse_start(self, tag, elem):
        depth = self.depth
        version = self.service.version
        parent = self.stack[depth - 1] if 0 < depth <= MAX_STACK_DEPTH else None
        slot = None
        if depth == 0:
            slot = self._start_root(tag, elem)
        elif depth == 1 and parent == CAPABILITIES:
            if tag == 'Service':
                slot = SERVICE
            elif tag == 'Capability':
                slot = CAPABILITY
        elif depth == 2 and parent == SERVICE:
            if tag == 'Title':
                slot = TITLE
            elif tag == 'Abstract':
                slot = ABSTRACT
            elif version.has_max_size:
                if tag == 'MaxWidth':
                    slot = MAX_WIDTH
                elif tag == 'MaxHeight':
                    slot = MAX_HEIGHT
        elif depth == 2 and parent == CAPABILITY:
            if tag == 'Request':
                slot = REQUEST
            elif tag == 'Layer':
                self._parse_layer()
                return
        elif depth == 3 and parent == REQUEST:
            if tag == version.get_map_tag:
                slot = GET_MAP
        elif depth == 4 and parent == GET_MAP:
            if tag == 'Format':
                slot = FORMAT
        elif depth == 5 and parent == FORMAT:
            if version.has_obsolete_formats:
                self.service.add_obsolete_image_format(tag)
                slot = OBSOLETE_FORMAT

        if depth < MAX_STACK_DEPTH:
            self.stack[depth] = slot
        self.depth += 1

    def _start_root(self, tag, elem):
        if tag not in ROOT_TAGS:
            raise WrongRootTagError()
        version = elem.get('version')
        if version is None:
            raise VersionNotQuotedError()
        if not self.service.set_version(version.strip()):
            raise VersionNotSupportedError('Version %s of WMS is not supported!' % (version, ))
        if tag != self.service.version.root_tag:
            raise WrongRootTagError()
        log.debug('reading WMS %s capabilities', self.service.version)
        return CAPABILITIES

    def _parse_layer(self):
        if not self.service.has_image_formats():
            raise NoImageFormatsError()
        if self.service.layer is not None:
            log.warning('capabilities contain more than one top-level layer, '
                'using the last one')
        LayerParser().parse(self.events, self.service)

    def parse_text(self, text):
        depth = self.depth
        if not 0 < depth <= MAX_STACK_DEPTH:
            return
        slot = self.stack[depth - 1]
        if slot == TITLE:
            self.service.title = text
        elif slot == ABSTRACT:
            self.service.description = text
        elif slot == MAX_WIDTH:
            self.service.max_width = parse_size(text, InvalidMaxWidthError)
        elif slot == MAX_HEIGHT:
            self.service.max_height = parse_size(text, InvalidMaxHeightError)
        elif slot == FORMAT and not self.service.version.has_obsolete_formats:
            if self.service.add_image_format(text) is None:
                log.debug('ignoring unsupported image format %s', text)

    def parse_end(self, tag, elem):
        self.depth -= 1
        depth = self.depth
        if depth == 0:
            self._end_root()
        elif depth < MAX_STACK_DEPTH:
            self.stack[depth] = None

    def _end_root(self):
        root = self.service.layer
        if root is None:
            raise NoRootLayerError()
        root.generalize_crs_ids()
        if not root.has_crs():
            raise NoGlobalCRSError()
        self.running = False


def parse_size(text, error_class):
    """
    Maximum image size in pixels, ``None`` for no limit (0).
    """
    if not _natural_number_re.match(text):
        raise error_class()
    return int(text) or None


CRS = 'crs'

class LayerParser(XMLParser):
    """
    Parses the content of one ``<Layer>`` element. The parser starts
    after the start event of its element and stops after the matching
    end event.

    Only direct children are evaluated, nested content like styles or
    attribution is skipped.
    """
    layer_child_tags = ('Name', 'Title', 'Abstract', 'BoundingBox', 'Style')

    def __init__(self, parent=None):
        XMLParser.__init__(self)
        self.parent = parent
        self.builder = None

    def initialize(self, service):
        self.service = service
        if self.parent is not None:
            self.builder = self.parent.add_layer()
        else:
            self.builder = service.make_layer_builder()
        self.depth = 0
        self.tag = None

    def finalize(self):
        self.events = None

    def parse_start(self, tag, elem):
        if self.depth == 0:
            if tag == 'Layer':
                LayerParser(self.builder).parse(self.events, self.service)
                return
            if tag in self.layer_child_tags:
                self.tag = tag
            elif tag == self.service.version.crs_tag:
                self.tag = CRS
            else:
                self.tag = None
        self.depth += 1

    def parse_text(self, text):
        if self.depth != 1:
            return
        if self.tag == 'Name':
            self.builder.name = text
        elif self.tag == 'Title':
            self.builder.title = text
        elif self.tag == 'Abstract':
            self.builder.description = text
        elif self.tag == CRS:
            if self.service.version > ProtocolVersion.V1_1_1:
                self.builder.add_crs(text)
            else:
                # SRS of older versions can list multiple codes
                for code in text.split():
                    self.builder.add_crs(code)

    def parse_end(self, tag, elem):
        if self.depth == 0:
            if not self.builder.name and not self.builder.has_sublayers():
                raise LeafWithoutNameError()
            self.running = False
            return
        self.depth -= 1
        if self.depth == 0:
            self.tag = None


def iter_events(source):
    if isinstance(source, bytes):
        source = BytesIO(source)
    return etree.iterparse(source, events=('start', 'end'),
        no_network=True, resolve_entities=False, remove_comments=True,
        remove_pis=True)

def parse_capabilities(source, service_address=None):
    """
    Parse a capabilities document and return the `Wms`.

    :param source: file object, file name or the document as bytes
    :raises CapabilitiesError: if the document is not a valid WMS
        capabilities document
    """
    service = ServiceBuilder(service_address)
    events = iter_events(source)
    try:
        CapabilitiesParser().parse(events, service)
    except etree.XMLSyntaxError as ex:
        raise MalformedStreamError('Document is not well-formed: %s' % (ex, )) from ex

    wms = service.build()
    log.info('WMS %s "%s": %d CRS, %d layers', wms.version, wms.title,
        wms.crs_count, sum(1 for _ in wms.layer.iter_layers()))
    return wms

def open_capabilities(url, http_client=None):
    """
    Download and parse the capabilities of the WMS at `url`.

    :raises HTTPClientError: if the download fails
    :raises CapabilitiesError: if the response is not a valid WMS
        capabilities document
    """
    if http_client is None:
        from wmsview.client.http import HTTPClient
        http_client = HTTPClient()

    cap_url = capabilities_url(url)
    resp = http_client.open(cap_url)
    with resp:
        content_type = resp.headers.get('content-type', '')
        mime_type = content_type.split(';', 1)[0].strip().lower()
        if mime_type not in XML_CONTENT_TYPES:
            raise NotXMLDocumentError(
                'Capabilities document is not an XML document (content type "%s")!' % (
                    mime_type, ))
        data = http_client.read_body(resp, cap_url)

    return parse_capabilities(data, service_address=service_address(url))
