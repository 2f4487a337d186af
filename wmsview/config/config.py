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
System-wide configuration.
"""
import os
import copy
import contextlib
import threading

from wmsview.util.yaml import load_yaml_file, YAMLError

import logging
log = logging.getLogger('wmsview.config')


class ConfigurationError(Exception):
    pass


class Options(dict):
    """
    Dictionary with attribute style access.

    >>> o = Options(bar='foo')
    >>> o.bar
    'foo'
    """
    def __repr__(self):
        return '%s(%s)' % (self.__class__.__name__, dict.__repr__(self))

    def __getattr__(self, name):
        if name in self:
            return self[name]
        else:
            raise AttributeError(name)

    __setattr__ = dict.__setitem__

    def __delattr__(self, name):
        if name in self:
            del self[name]
        else:
            raise AttributeError(name)

    def update(self, other=None, **kw):
        if other is not None:
            if hasattr(other, 'items'):
                it = other.items()
            else:
                it = iter(other)
        else:
            it = kw.items()
        for key, value in it:
            if key in self and isinstance(self[key], Options):
                self[key].update(value)
            else:
                self[key] = value

    def __deepcopy__(self, memo):
        return Options(copy.deepcopy(list(self.items()), memo))


class _ConfigStack(object):
    """
    Stack of configurations shared by all threads. The download worker
    runs in its own thread and must see the configuration loaded by the
    application.
    """
    def __init__(self):
        self._stack = []
        self._lock = threading.Lock()

    def push(self, conf):
        with self._lock:
            self._stack.append(conf)

    def pop(self):
        with self._lock:
            return self._stack.pop()

    @property
    def top(self):
        with self._lock:
            if self._stack:
                return self._stack[-1]
            return None

_config = _ConfigStack()

def base_config():
    """
    Returns the system-wide configuration. Loads the defaults on first use.
    """
    config = _config.top
    if config is None:
        config = load_default_config()
        config.conf_base_dir = os.getcwd()
        _config.push(config)
    return config

@contextlib.contextmanager
def local_base_config(conf):
    """
    Temporarily set the global configuration (wmsview.config.base_config).
    """
    _config.push(conf)
    try:
        yield
    finally:
        _config.pop()

def _to_options_map(mapping):
    if isinstance(mapping, dict):
        opt = Options()
        for key, value in mapping.items():
            opt[key] = _to_options_map(value)
        return opt
    elif isinstance(mapping, list):
        return [_to_options_map(m) for m in mapping]
    else:
        return mapping

def _default_config_dict():
    from wmsview.config import defaults
    config_dict = {}
    for k, v in defaults.__dict__.items():
        if k.startswith('_'): continue
        config_dict[k] = copy.deepcopy(v)
    return config_dict

def finish_base_config(bc=None):
    bc = bc or base_config()
    if 'layer' in bc:
        bc.layer.bgcolor = tuple(bc.layer.bgcolor)
    if 'wms' in bc:
        bc.wms.preferred_crs = [crs.upper() for crs in bc.wms.preferred_crs]

def load_base_config(config_file=None, clear_existing=False):
    """
    Load system wide base configuration.

    :param config_file: the file name of the wmsview.yaml configuration.
                        if ``None``, load the internal defaults
    :param clear_existing: if ``True`` remove the existing configuration settings,
                           else overwrite the settings.
    :raises ConfigurationError: if the file is not valid YAML or does not
                                match the configuration schema
    """
    if config_file is None:
        conf_base_dir = os.getcwd()
        load_config(base_config(), config_dict=_default_config_dict(),
            clear_existing=clear_existing)
    else:
        conf_base_dir = os.path.abspath(os.path.dirname(config_file))
        try:
            config_dict = load_yaml_file(config_file)
        except YAMLError as ex:
            raise ConfigurationError(ex.args[0])

        from wmsview.config.validator import validate
        errors = validate(config_dict)
        if errors:
            for error in errors:
                log.error(error)
            raise ConfigurationError('invalid configuration in %s: %s' % (
                config_file, '; '.join(errors)))
        if clear_existing:
            # keep the defaults for all options the file does not set
            load_config(base_config(), config_dict=_default_config_dict(),
                clear_existing=True)
        load_config(base_config(), config_dict=config_dict)

    bc = base_config()
    finish_base_config(bc)

    bc.conf_base_dir = conf_base_dir

def load_default_config():
    default_conf = Options()
    load_config(default_conf, config_dict=_default_config_dict())
    finish_base_config(default_conf)
    return default_conf

def load_config(config, config_file=None, config_dict=None, clear_existing=False):
    if clear_existing:
        for key in list(config.keys()):
            del config[key]

    if config_dict is None:
        config_dict = load_yaml_file(config_file)

    defaults = _to_options_map(config_dict)

    if defaults:
        for key, value in defaults.items():
            if key in config and hasattr(config[key], 'update'):
                config[key].update(value)
            else:
                config[key] = value
