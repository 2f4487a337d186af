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
Map and capabilities retrieval over HTTP.
"""
import time

import requests

from wmsview.version import version
from wmsview.config import base_config
from wmsview.client.log import log_request


class HTTPClientError(Exception):
    def __init__(self, arg, response_code=None, full_msg=None):
        Exception.__init__(self, arg)
        self.response_code = response_code
        self.full_msg = full_msg


class FetchCancelled(HTTPClientError):
    """
    The transfer was aborted because the caller is no longer interested
    in the result.
    """


class HTTPClient(object):
    def __init__(self, timeout=None, headers=None, insecure=None,
                 ssl_ca_certs=None, hide_error_details=False, chunk_size=None):
        http_conf = base_config().http
        if timeout is None:
            timeout = http_conf.client_timeout
        if insecure is None:
            insecure = http_conf.ssl_no_cert_checks
        if ssl_ca_certs is None:
            ssl_ca_certs = http_conf.ssl_ca_certs

        self._timeout = timeout
        self.chunk_size = chunk_size or http_conf.chunk_size
        self.hide_error_details = hide_error_details

        self.session = requests.Session()
        self.session.headers['User-agent'] = 'WMSView-%s' % (version,)
        if headers:
            self.session.headers.update(headers)
        if insecure:
            self.session.verify = False
        elif ssl_ca_certs:
            self.session.verify = ssl_ca_certs

    def open(self, url):
        """
        Start a GET request and return the streamed response. The caller
        is responsible to close it.

        :raise HTTPClientError: for connection errors and error status codes
        """
        code = None
        result = None
        start_time = time.time()
        try:
            result = self.session.get(url, timeout=self._timeout, stream=True)
            code = result.status_code
            result.raise_for_status()
        except requests.exceptions.HTTPError as e:
            result.close()
            raise self.handle_url_exception(url, 'HTTP Error', str(code), response_code=code) from e
        except requests.exceptions.SSLError as e:
            raise self.handle_url_exception(url, 'Could not verify connection to URL', e) from e
        except (requests.exceptions.MissingSchema, requests.exceptions.InvalidSchema,
                requests.exceptions.InvalidURL) as e:
            raise self.handle_url_exception(url, 'URL not correct', e) from e
        except requests.exceptions.RequestException as e:
            raise self.handle_url_exception(url, 'No response from URL', e) from e
        else:
            if code == 204:
                result.close()
                raise HTTPClientError('HTTP Error "204 No Content"', response_code=204)
            return result
        finally:
            log_request(url, code, result, duration=time.time()-start_time)

    def fetch(self, url, cancelled=None):
        """
        Download `url` and return the body.

        :param cancelled: callable, polled between received chunks. The
            transfer is aborted with `FetchCancelled` as soon as it
            returns ``True``.
        """
        resp = self.open(url)
        with resp:
            return self.read_body(resp, url, cancelled)

    def fetch_image(self, url, cancelled=None):
        """
        Like `fetch`, but the response must not declare a non-image
        content type.
        """
        resp = self.open(url)
        with resp:
            content_type = resp.headers.get('content-type')
            if content_type and not content_type.lower().startswith('image'):
                head = next(resp.iter_content(chunk_size=1000), b'')
                raise HTTPClientError('response is not an image: (%s)' % (
                    head.decode('utf-8', 'backslashreplace'), ))
            return self.read_body(resp, url, cancelled)

    def read_body(self, resp, url, cancelled=None):
        chunks = []
        try:
            if cancelled is not None and cancelled():
                raise FetchCancelled('download of "%s" cancelled' % (url, ))
            for chunk in resp.iter_content(chunk_size=self.chunk_size):
                if cancelled is not None and cancelled():
                    raise FetchCancelled('download of "%s" cancelled' % (url, ))
                chunks.append(chunk)
        except requests.exceptions.RequestException as e:
            raise self.handle_url_exception(url, 'No response from URL', e) from e
        return b''.join(chunks)

    def handle_url_exception(self, url, message, reason, response_code=None):
        full_msg = '%s "%s": %s' % (message, url, reason)
        if self.hide_error_details:
            return HTTPClientError(
                '{} (see logs for URL and reason).'.format(message),
                response_code=response_code,
                full_msg=full_msg,
            )
        else:
            return HTTPClientError(
                full_msg,
                response_code=response_code,
            )
