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
WMS service description: protocol versions, image formats and the
`Wms` descriptor built from a capabilities document.
"""
import enum

from wmsview.config import base_config


class ProtocolVersion(enum.IntEnum):
    """
    Supported WMS versions. The members are ordered by their release,
    comparisons select between the old and new vocabulary.

    >>> ProtocolVersion.from_string('1.1.1') > ProtocolVersion.V1_0_7
    True
    """
    V1_0_0 = 0
    V1_0_7 = 1
    V1_1_0 = 2
    V1_1_1 = 3
    V1_3_0 = 4

    @property
    def string(self):
        return _version_strings[self]

    def __str__(self):
        return self.string

    @classmethod
    def from_string(cls, value):
        for version, version_string in _version_strings.items():
            if version_string == value:
                return version
        return None

    @property
    def root_tag(self):
        if self > ProtocolVersion.V1_1_1:
            return 'WMS_Capabilities'
        return 'WMT_MS_Capabilities'

    @property
    def crs_tag(self):
        if self > ProtocolVersion.V1_1_1:
            return 'CRS'
        return 'SRS'

    @property
    def get_map_tag(self):
        if self > ProtocolVersion.V1_0_7:
            return 'GetMap'
        return 'Map'

    @property
    def has_max_size(self):
        return self > ProtocolVersion.V1_1_1

    @property
    def has_obsolete_formats(self):
        return self <= ProtocolVersion.V1_0_7

_version_strings = {
    ProtocolVersion.V1_0_0: '1.0.0',
    ProtocolVersion.V1_0_7: '1.0.7',
    ProtocolVersion.V1_1_0: '1.1.0',
    ProtocolVersion.V1_1_1: '1.1.1',
    ProtocolVersion.V1_3_0: '1.3.0',
}


class ImageFormat(enum.IntEnum):
    """
    Image formats a layer can be requested in. Lower values are preferred.
    """
    PNG = 0
    PNG8 = 1
    PNG24 = 2
    PNG32 = 3
    JPEG = 4
    TIFF = 5
    BMP = 6
    GIF = 7

    @property
    def mime_type(self):
        return 'image/' + self.name.lower()

    @property
    def obsolete_name(self):
        return self.name

    @property
    def supports_transparency(self):
        return self in _transparent_formats

    @classmethod
    def from_mime_type(cls, value):
        for fmt in cls:
            if fmt.mime_type == value:
                return fmt
        return None

    @classmethod
    def from_obsolete_name(cls, value):
        for fmt in cls:
            if fmt.obsolete_name == value:
                return fmt
        return None

_transparent_formats = frozenset([
    ImageFormat.PNG, ImageFormat.PNG8, ImageFormat.PNG24, ImageFormat.PNG32,
    ImageFormat.GIF,
])


class Wms(object):
    """
    Description of one WMS service as advertised by its capabilities.

    The CRS names are indexed by their position, layers reference them
    by these ids.
    """
    def __init__(self, service_address, version=ProtocolVersion.V1_3_0,
                 title='', description='', max_width=None, max_height=None,
                 crs_names=(), image_formats=(), crs_id=0):
        self.service_address = service_address
        self.version = version
        self.title = title
        self.description = description
        self.max_width = max_width
        self.max_height = max_height
        self.crs_names = tuple(crs_names)
        self.image_formats = tuple(sorted(image_formats))
        self.layer = None
        self.downloading_enabled = True
        self._crs_id = None
        self.crs_id = crs_id

    @property
    def crs_id(self):
        return self._crs_id

    @crs_id.setter
    def crs_id(self, value):
        if not (0 <= value < len(self.crs_names)):
            raise ValueError('CRS id %r out of range (%d CRS)' % (value, len(self.crs_names)))
        self._crs_id = value

    @property
    def crs_count(self):
        return len(self.crs_names)

    def crs_name(self, crs_id=None):
        if crs_id is None:
            crs_id = self._crs_id
        return self.crs_names[crs_id]

    def find_crs_id(self, name):
        """
        Return the id of the CRS `name` (case-insensitive) or ``None``.
        """
        name = name.upper()
        for crs_id, crs_name in enumerate(self.crs_names):
            if crs_name.upper() == name:
                return crs_id
        return None

    @property
    def crs_variable_name(self):
        if self.version > ProtocolVersion.V1_1_1:
            return 'crs'
        return 'srs'

    @property
    def is_crs_reversed(self):
        """
        ``True`` if the selected CRS uses latitude/longitude axis order
        in GetMap requests.
        """
        return self.is_axis_order_reversed(self._crs_id)

    def is_axis_order_reversed(self, crs_id):
        # TODO: only confirmed for EPSG:4326 and EPSG:4258, projected EPSG codes use east/north
        return (self.version >= ProtocolVersion.V1_3_0
            and self.crs_names[crs_id].upper().startswith('EPSG:'))

    def image_format_string(self, image_format):
        if self.version > ProtocolVersion.V1_0_7:
            return image_format.mime_type
        return image_format.obsolete_name

    def __repr__(self):
        return 'Wms(%r, version=%s)' % (self.service_address, self.version)


class ServiceBuilder(object):
    """
    Collects the service information while a capabilities document is
    parsed. `build` creates the final `Wms`.
    """
    def __init__(self, service_address=None):
        self.service_address = service_address
        self.title = ''
        self.description = ''
        self.version = ProtocolVersion.V1_3_0
        self.max_width = None
        self.max_height = None
        self.layer = None
        self._crs_names = []
        self._crs_ids = {}
        self._image_formats = set()

    def set_version(self, value):
        version = ProtocolVersion.from_string(value)
        if version is None:
            return False
        self.version = version
        return True

    @property
    def crs_names(self):
        return tuple(self._crs_names)

    def add_crs(self, name):
        """
        Register the CRS `name` and return its id. Known names keep
        their id.
        """
        crs_id = self._crs_ids.get(name)
        if crs_id is None:
            crs_id = len(self._crs_names)
            self._crs_names.append(name)
            self._crs_ids[name] = crs_id
        return crs_id

    def add_image_format(self, mime_type):
        fmt = ImageFormat.from_mime_type(mime_type)
        if fmt is not None:
            self._image_formats.add(fmt)
        return fmt

    def add_obsolete_image_format(self, name):
        fmt = ImageFormat.from_obsolete_name(name)
        if fmt is not None:
            self._image_formats.add(fmt)
        return fmt

    def has_image_formats(self):
        return bool(self._image_formats)

    @property
    def image_formats(self):
        return tuple(sorted(self._image_formats))

    def best_image_format(self):
        assert self._image_formats, 'no image format declared'
        return min(self._image_formats)

    def make_layer_builder(self):
        """
        Create the builder of a new root layer. A previous root layer
        is replaced.
        """
        from wmsview.layer import LayerBuilder
        self.layer = LayerBuilder(self)
        return self.layer

    def preferred_crs_id(self):
        names = [name.upper() for name in self._crs_names]
        for crs in base_config().wms.preferred_crs:
            if crs.upper() in names:
                return names.index(crs.upper())
        return 0

    def build(self):
        assert self.layer is not None, 'no root layer'
        assert self._crs_names, 'no CRS'
        wms = Wms(self.service_address,
            version=self.version,
            title=self.title,
            description=self.description,
            max_width=self.max_width,
            max_height=self.max_height,
            crs_names=self._crs_names,
            image_formats=self._image_formats,
            crs_id=self.preferred_crs_id(),
        )
        wms.layer = self.layer.build(wms)
        return wms
