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

import sys
import optparse
import logging

from wmsview.client.http import HTTPClientError
from wmsview.config import load_base_config, ConfigurationError
from wmsview.wms.exceptions import CapabilitiesError
from wmsview.wms.parse import open_capabilities


class PrettyPrinter(object):
    def __init__(self, indent=4):
        self.indent = indent
        self.marker = '- '

    def print_line(self, indent, key, value=None, mark_first=False):
        marker = ''
        if value is None:
            value = ''
        if mark_first:
            indent = indent - len(self.marker)
            marker = self.marker
        print(("%s%s%s: %s" % (' '*indent, marker, key, value)))

    def print_service(self, wms):
        print('Capabilities Document Version %s' % (wms.version, ))
        self.print_line(0, 'title', wms.title)
        if wms.description:
            self.print_line(0, 'abstract', wms.description)
        self.print_line(0, 'url', wms.service_address)
        if wms.max_width is not None or wms.max_height is not None:
            self.print_line(0, 'max size', '%sx%s' % (
                wms.max_width or '-', wms.max_height or '-'))
        self.print_line(0, 'crs', ', '.join(wms.crs_names))
        self.print_line(0, 'selected crs', wms.crs_name())
        self.print_line(0, 'formats', ', '.join(
            wms.image_format_string(fmt) for fmt in wms.image_formats))
        print('Root-Layer:')
        self.print_layers([wms.layer], self.indent)

    def print_layers(self, layers, indent):
        for layer in layers:
            wms = layer.wms
            if layer.is_leaf():
                self.print_line(indent, 'name', layer.name, mark_first=True)
                self.print_line(indent, 'title', layer.title)
            else:
                self.print_line(indent, 'title', layer.title, mark_first=True)
            if layer.crs_ids:
                self.print_line(indent, 'crs', ', '.join(
                    wms.crs_name(crs_id) for crs_id in layer.crs_ids))
            if not layer.is_leaf():
                self.print_line(indent, 'layers')
                self.print_layers(layer.children, indent + self.indent)

def log_error(msg, *args):
    print(msg % args, file=sys.stderr)

def wms_capabilities_command(args=None):
    parser = optparse.OptionParser("%prog capabilities [options] URL",
        description="Download and parse the WMS capabilities and print out"
        " the service information and the layer tree.")
    parser.add_option("--crs", dest="crs",
        help="Select this CRS instead of the preferred one.")
    parser.add_option("-f", "--config", dest="config_file",
        help="WMSView configuration (YAML)")
    parser.add_option("--debug", default=False, action='store_true',
        dest="debug", help="Enable debug logging")

    if args:
        args = args[1:] # remove script name

    (options, args) = parser.parse_args(args)
    if len(args) != 1:
        parser.print_help()
        sys.exit(2)

    from wmsview.script.util import setup_logging
    setup_logging(level=logging.DEBUG if options.debug else logging.WARNING)

    if options.config_file:
        try:
            load_base_config(options.config_file)
        except ConfigurationError as ex:
            log_error('ERROR: %s', ex.args[0])
            sys.exit(1)

    try:
        wms = open_capabilities(args[0])
    except HTTPClientError as ex:
        log_error('ERROR: %s', ex.args[0])
        sys.exit(1)
    except CapabilitiesError as ex:
        log_error('Could not parse the document: %s', ex.args[0])
        sys.exit(1)

    if options.crs:
        crs_id = wms.find_crs_id(options.crs)
        if crs_id is None:
            log_error('ERROR: service does not support %s', options.crs)
            sys.exit(1)
        wms.crs_id = crs_id

    PrettyPrinter(indent=4).print_service(wms)
