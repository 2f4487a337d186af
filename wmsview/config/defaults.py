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

wms = dict(
    # first match wins, otherwise the first CRS of the service is selected
    preferred_crs = ['EPSG:4326', 'CRS:84'],
)

layer = dict(
    transparent = True,
    bgcolor = [255, 255, 255],
    auto_update = True,
    download_one_image = True,
)

http = dict(
    ssl_ca_certs = None,
    ssl_no_cert_checks = False,
    client_timeout = 60,
    chunk_size = 16 * 1024,
)
