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
Errors of the capabilities document parser. All of them abort the
parsing of the document.
"""


class CapabilitiesError(Exception):
    """
    Base class for all errors that occur when a capabilities document
    is read.
    """
    msg = None

    def __init__(self, msg=None):
        if msg is None:
            msg = self.msg
        if msg:
            full_msg = 'The error has occurred when processing WMS capabilities: %s' % (msg, )
        else:
            full_msg = 'The error has occurred when processing WMS capabilities!'
        Exception.__init__(self, full_msg)
        self.reason = msg


class MalformedStreamError(CapabilitiesError):
    msg = 'Document is not well-formed!'

class WrongRootTagError(CapabilitiesError):
    msg = 'Root tag has wrong name!'

class VersionNotQuotedError(CapabilitiesError):
    msg = 'Version of WMS is not quoted!'

class VersionNotSupportedError(CapabilitiesError):
    msg = 'Version of WMS is not supported!'

class NoImageFormatsError(CapabilitiesError):
    msg = 'WMS service does not support any image format!'

class LeafWithoutNameError(CapabilitiesError):
    msg = 'A leaf layer is without a name!'

class NoRootLayerError(CapabilitiesError):
    msg = 'There does not exist root layer!'

class NoGlobalCRSError(CapabilitiesError):
    msg = 'WMS service does not support any global CRS!'

class InvalidMaxWidthError(CapabilitiesError):
    msg = 'Value of image maximal width is not a natural number!'

class InvalidMaxHeightError(CapabilitiesError):
    msg = 'Value of image maximal height is not a natural number!'

class NotXMLDocumentError(CapabilitiesError):
    msg = 'Capabilities document is not an XML document!'
