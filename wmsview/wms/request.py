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
URLs of WMS requests.
"""
from urllib.parse import quote, urlsplit, urlunsplit


def _quote(value):
    return quote(str(value), safe=':,/')

def _join_query(address, params):
    query = '&'.join('%s=%s' % (key, _quote(value)) for key, value in params)
    if '?' not in address:
        return address + '?' + query
    if address.endswith(('?', '&')):
        return address + query
    return address + '&' + query

def service_address(url):
    """
    Return `url` without query and fragment.

    >>> service_address('http://example.org/service?request=GetCapabilities')
    'http://example.org/service'
    """
    scheme, netloc, path, _query, _fragment = urlsplit(url)
    return urlunsplit((scheme, netloc, path, '', ''))

def capabilities_url(address):
    """
    >>> capabilities_url('http://example.org/service?foo=bar')
    'http://example.org/service?service=WMS&request=GetCapabilities'
    """
    return service_address(address) + '?service=WMS&request=GetCapabilities'

def map_request_url(wms, image):
    """
    Format the GetMap URL for the `MapImage` `image` of the service `wms`.

    The bbox axes are swapped for CRS with latitude/longitude order
    (EPSG codes with WMS 1.3.0).
    """
    minx, miny, maxx, maxy = image.view.bbox
    if wms.is_axis_order_reversed(image.crs_id):
        bbox = (miny, minx, maxy, maxx)
    else:
        bbox = (minx, miny, maxx, maxy)
    width, height = image.view.size
    params = [
        ('service', 'WMS'),
        ('version', wms.version.string),
        ('request', 'GetMap'),
        ('layers', image.layers),
        ('styles', ''),
        (wms.crs_variable_name, wms.crs_name(image.crs_id)),
        ('bbox', ','.join(repr(float(c)) for c in bbox)),
        ('width', int(width)),
        ('height', int(height)),
        ('format', wms.image_format_string(image.image_format)),
        ('transparent', 'TRUE' if image.transparent else 'FALSE'),
        ('bgcolor', '0x%02X%02X%02X' % tuple(image.bgcolor)),
    ]
    return _join_query(wms.service_address, params)
