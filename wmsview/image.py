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
Map images: the view they cover, the request parameters and the
downloaded pixel data.
"""
import threading
from io import BytesIO

from PIL import Image

from wmsview.wms.request import map_request_url


class ImageDecodeError(Exception):
    pass


def decode_image(data):
    """
    Decode the downloaded `data` into a PIL image.

    :raises ImageDecodeError: if Pillow can not read the data
    """
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as ex:
        raise ImageDecodeError('unable to decode image: %s' % (ex, ))
    return img


class View(object):
    """
    Snapshot of a map extent and the pixel size it is rendered in.

    >>> View((0, 0, 100, 50), (200, 100)).limited(100, 100)
    View((25.0, 0.0, 75.0, 50.0), (100, 100))
    """
    def __init__(self, bbox, size):
        self._bbox = tuple(float(c) for c in bbox)
        self._size = tuple(int(s) for s in size)

    @property
    def bbox(self):
        return self._bbox

    @property
    def size(self):
        return self._size

    def limited(self, max_width=None, max_height=None):
        """
        Return a view that is not larger than `max_width`/`max_height`
        pixels. The extent shrinks around its center and keeps the
        resolution.
        """
        width, height = self._size
        new_width = width if max_width is None else min(width, max_width)
        new_height = height if max_height is None else min(height, max_height)
        if (new_width, new_height) == (width, height):
            return self

        minx, miny, maxx, maxy = self._bbox
        center_x = (minx + maxx) / 2
        center_y = (miny + maxy) / 2
        half_width = (maxx - minx) / width * new_width / 2
        half_height = (maxy - miny) / height * new_height / 2
        return View(
            (center_x - half_width, center_y - half_height,
             center_x + half_width, center_y + half_height),
            (new_width, new_height),
        )

    def __eq__(self, other):
        if not isinstance(other, View):
            return NotImplemented
        return self._bbox == other._bbox and self._size == other._size

    def __ne__(self, other):
        equal = self.__eq__(other)
        if equal is NotImplemented:
            return equal
        return not equal

    def __hash__(self):
        return hash((self._bbox, self._size))

    def __repr__(self):
        return 'View(%r, %r)' % (self._bbox, self._size)


class MapImage(object):
    """
    Parameters of one GetMap request and, once downloaded, its image.

    Two map images are equal if all request parameters are equal, the
    image data is not compared.
    """
    def __init__(self, layers, crs_id, view, image_format, transparent=True,
                 bgcolor=(255, 255, 255)):
        if not layers:
            raise ValueError('map image without layers')
        if crs_id < 0:
            raise ValueError('invalid CRS id %r' % (crs_id, ))
        self.layers = layers
        self.crs_id = crs_id
        self.view = view
        self.image_format = image_format
        self.transparent = bool(transparent)
        self.bgcolor = tuple(bgcolor)
        self._data = None
        self._lock = threading.Lock()

    @property
    def key(self):
        return (self.layers, self.crs_id, self.view, self.image_format,
            self.transparent, self.bgcolor)

    def __eq__(self, other):
        if not isinstance(other, MapImage):
            return NotImplemented
        return self.key == other.key

    def __ne__(self, other):
        equal = self.__eq__(other)
        if equal is NotImplemented:
            return equal
        return not equal

    def __hash__(self):
        return hash(self.key)

    def crs_equals(self, other):
        return other is not None and self.crs_id == other.crs_id

    @property
    def data(self):
        return self._data

    def assign_data(self, img):
        with self._lock:
            old, self._data = self._data, img
        if old is not None and old is not img:
            old.close()

    def release(self):
        """
        Close the image data. Can be called more than once.
        """
        with self._lock:
            data, self._data = self._data, None
        if data is not None:
            data.close()

    def image_address(self, wms):
        if not (0 <= self.crs_id < wms.crs_count):
            return None
        return map_request_url(wms, self)

    def __repr__(self):
        return 'MapImage(%r, crs_id=%d, view=%r, format=%s)' % (
            self.layers, self.crs_id, self.view, self.image_format.name)
