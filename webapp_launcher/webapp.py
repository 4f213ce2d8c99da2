"""
Web application context mounted by the launcher.

A web application is a resource root laid out like a servlet archive:

    <root>/                     static resources, served as-is
    <root>/WEB-INF/web.xml      deployment descriptor
    <root>/WEB-INF/classes/     application modules
    <root>/WEB-INF/lib/         application packages (directories, .zip or .whl)

Servlets declared in the descriptor are WSGI callables referenced as
``module:attribute`` and are mounted at their url-pattern prefixes.
"""
import os
import sys
import logging
import zipfile
import posixpath
import importlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from flask import Flask, abort, redirect, request, send_from_directory
from werkzeug.exceptions import NotFound, default_exceptions
from werkzeug.middleware.dispatcher import DispatcherMiddleware
from werkzeug.security import safe_join

from .exceptions import ResourceError

logger = logging.getLogger(__name__)

DEFAULT_WELCOME_FILES = ['index.html', 'index.htm']
PROTECTED_DIRECTORIES = ('WEB-INF', 'META-INF')
ARCHIVE_EXTENSIONS = ('.zip', '.whl')


@dataclass
class ServletDefinition:
    name: str
    servlet_class: str
    init_params: Dict[str, str] = field(default_factory=dict)
    url_patterns: List[str] = field(default_factory=list)


@dataclass
class DeploymentDescriptor:
    display_name: Optional[str] = None
    context_params: Dict[str, str] = field(default_factory=dict)
    servlets: Dict[str, ServletDefinition] = field(default_factory=dict)
    welcome_files: List[str] = field(default_factory=list)
    error_pages: Dict[int, str] = field(default_factory=dict)


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def _children(element, name: str):
    return [child for child in element if _local_name(child.tag) == name]


def _text(element, name: str) -> Optional[str]:
    for child in _children(element, name):
        if child.text and child.text.strip():
            return child.text.strip()
    return None


def _params(element, name: str) -> Dict[str, str]:
    params = {}
    for param in _children(element, name):
        param_name = _text(param, 'param-name')
        if param_name:
            params[param_name] = _text(param, 'param-value') or ''
    return params


def parse_descriptor(path: str) -> DeploymentDescriptor:
    """
    Parse the WSGI-relevant subset of a web.xml deployment descriptor

    Args:
        path: Descriptor file

    Returns:
        DeploymentDescriptor

    Raises:
        ResourceError: descriptor missing, malformed or inconsistent
    """
    if not os.path.isfile(path):
        raise ResourceError(f"Deployment descriptor not found: {path}")

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ResourceError(f"Malformed deployment descriptor {path}: {e}") from e

    if _local_name(root.tag) != 'web-app':
        raise ResourceError(
            f"Deployment descriptor {path} has root <{_local_name(root.tag)}>, expected <web-app>")

    descriptor = DeploymentDescriptor(
        display_name=_text(root, 'display-name'),
        context_params=_params(root, 'context-param'),
    )

    for servlet in _children(root, 'servlet'):
        name = _text(servlet, 'servlet-name')
        servlet_class = _text(servlet, 'servlet-class')
        if not name or not servlet_class:
            raise ResourceError(
                f"Servlet in {path} needs both servlet-name and servlet-class")
        descriptor.servlets[name] = ServletDefinition(
            name=name,
            servlet_class=servlet_class,
            init_params=_params(servlet, 'init-param'),
        )

    for mapping in _children(root, 'servlet-mapping'):
        name = _text(mapping, 'servlet-name')
        if name not in descriptor.servlets:
            raise ResourceError(
                f"servlet-mapping in {path} refers to unknown servlet '{name}'")
        for pattern in _children(mapping, 'url-pattern'):
            if pattern.text and pattern.text.strip():
                descriptor.servlets[name].url_patterns.append(pattern.text.strip())

    for welcome_list in _children(root, 'welcome-file-list'):
        for welcome in _children(welcome_list, 'welcome-file'):
            if welcome.text and welcome.text.strip():
                descriptor.welcome_files.append(welcome.text.strip())
    if not descriptor.welcome_files:
        descriptor.welcome_files = list(DEFAULT_WELCOME_FILES)

    for error_page in _children(root, 'error-page'):
        code = _text(error_page, 'error-code')
        location = _text(error_page, 'location')
        if not code or not location:
            continue
        try:
            descriptor.error_pages[int(code)] = location
        except ValueError:
            logger.warning(f"Ignoring error-page with non-numeric code {code!r}")

    return descriptor


def mount_prefix(url_pattern: str) -> Optional[str]:
    """
    Mount point for a url-pattern

    ``/*`` and ``/`` map to the root (``''``), ``/api/*`` and ``/api`` to
    ``/api``. Extension patterns such as ``*.do`` have no prefix form and
    return None.
    """
    if url_pattern in ('/', '/*'):
        return ''
    if not url_pattern.startswith('/'):
        return None
    if url_pattern.endswith('/*'):
        url_pattern = url_pattern[:-2]
    return url_pattern.rstrip('/')


def application_class_path(resource_base: str) -> List[str]:
    """Code locations the application ships, in lookup order"""
    paths = []
    classes_dir = os.path.join(resource_base, 'WEB-INF', 'classes')
    if os.path.isdir(classes_dir):
        paths.append(os.path.abspath(classes_dir))

    lib_dir = os.path.join(resource_base, 'WEB-INF', 'lib')
    if os.path.isdir(lib_dir):
        for entry in sorted(os.listdir(lib_dir)):
            entry_path = os.path.join(lib_dir, entry)
            if os.path.isdir(entry_path) or entry.endswith(ARCHIVE_EXTENSIONS):
                paths.append(os.path.abspath(entry_path))
    return paths


def _top_level_modules(path: str) -> set:
    names = set()
    if os.path.isdir(path):
        for entry in os.listdir(path):
            entry_path = os.path.join(path, entry)
            if entry.endswith('.py'):
                names.add(entry[:-3])
            elif os.path.isfile(os.path.join(entry_path, '__init__.py')):
                names.add(entry)
    elif zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as archive:
            for member in archive.namelist():
                head = member.split('/', 1)[0]
                if head.endswith('.py'):
                    names.add(head[:-3])
                elif '/' in member and not head.endswith(('.dist-info', '.data')):
                    names.add(head)
    return names


def install_application_class_path(paths: List[str]) -> List[str]:
    """
    Put the application's code ahead of the container's on sys.path

    Modules already imported under a name the application ships are evicted
    so the next import resolves to the application's copy. The launcher's own
    package is never evicted.

    Returns:
        Names of the evicted modules
    """
    for path in reversed(paths):
        if path in sys.path:
            sys.path.remove(path)
        sys.path.insert(0, path)

    protected = {__name__.split('.')[0]} | set(sys.builtin_module_names)
    shipped = set()
    for path in paths:
        shipped |= _top_level_modules(path)
    shipped -= protected

    evicted = []
    for name in list(sys.modules):
        if name.split('.')[0] in shipped:
            del sys.modules[name]
            evicted.append(name)

    importlib.invalidate_caches()
    if evicted:
        logger.info(
            f"Application classes take priority over container classes: evicted {', '.join(sorted(evicted))}")
    return evicted


def resolve_servlet(servlet: ServletDefinition) -> Callable:
    """Import a servlet's WSGI callable, calling it as a factory when it has init-params"""
    reference = servlet.servlet_class
    if ':' in reference:
        module_name, _, attribute = reference.partition(':')
    else:
        module_name, _, attribute = reference.rpartition('.')
    if not module_name or not attribute:
        raise ResourceError(
            f"Servlet '{servlet.name}' class '{reference}' must look like module:attribute")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ResourceError(
            f"Cannot import servlet '{servlet.name}' module '{module_name}': {e}") from e

    target = module
    for part in attribute.split('.'):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ResourceError(
                f"Servlet '{servlet.name}': '{module_name}' has no attribute '{attribute}'") from e

    if servlet.init_params:
        if isinstance(target, Flask) or hasattr(target, 'wsgi_app'):
            # Already an application, init-params only apply to factories
            logger.warning(
                f"Servlet '{servlet.name}' is a WSGI app, ignoring init-params "
                f"{', '.join(sorted(servlet.init_params))}")
        else:
            try:
                target = target(**servlet.init_params)
            except TypeError as e:
                raise ResourceError(
                    f"Servlet '{servlet.name}' factory '{reference}' rejected init-params: {e}") from e

    if not callable(target):
        raise ResourceError(
            f"Servlet '{servlet.name}' ('{reference}') is not a WSGI callable")
    return target


class WebAppContext:
    """Resource root plus descriptor, mounted at a context path"""

    def __init__(self, resource_base: str, descriptor_path: Optional[str] = None,
                 context_path: str = '/', app_classes_first: bool = True):
        self.resource_base = os.path.abspath(resource_base)
        self.descriptor_path = descriptor_path or os.path.join(
            resource_base, 'WEB-INF', 'web.xml')
        self.context_path = context_path
        self.app_classes_first = app_classes_first
        self.descriptor: Optional[DeploymentDescriptor] = None
        self.app: Optional[Flask] = None
        self.wsgi_app: Optional[Callable] = None

    def load(self) -> 'WebAppContext':
        """Parse the descriptor and build the WSGI pipeline"""
        if not os.path.isdir(self.resource_base):
            raise ResourceError(f"Resource root not found: {self.resource_base}")

        self.descriptor = parse_descriptor(self.descriptor_path)

        if self.app_classes_first:
            install_application_class_path(
                application_class_path(self.resource_base))
        else:
            for path in application_class_path(self.resource_base):
                if path not in sys.path:
                    sys.path.append(path)

        self.app = self._create_resource_app()

        default_app = self.app.wsgi_app
        mounts = {}
        for servlet in self.descriptor.servlets.values():
            if not servlet.url_patterns:
                logger.warning(f"Servlet '{servlet.name}' has no servlet-mapping, not mounted")
                continue
            wsgi_callable = resolve_servlet(servlet)
            for pattern in servlet.url_patterns:
                prefix = mount_prefix(pattern)
                if prefix is None:
                    logger.warning(
                        f"Servlet '{servlet.name}': url-pattern '{pattern}' is not a path prefix, skipped")
                elif prefix == '':
                    default_app = wsgi_callable
                    logger.info(f"Mounted servlet '{servlet.name}' at /")
                else:
                    mounts[prefix] = wsgi_callable
                    logger.info(f"Mounted servlet '{servlet.name}' at {prefix}")

        self.app.wsgi_app = DispatcherMiddleware(default_app, mounts)

        context = self.context_path.rstrip('/')
        if context:
            self.wsgi_app = DispatcherMiddleware(NotFound(), {context: self.app})
        else:
            self.wsgi_app = self.app

        logger.info(
            f"Web application '{self.descriptor.display_name or self.resource_base}' "
            f"ready at context path {self.context_path}")
        return self

    def _create_resource_app(self) -> Flask:
        app = Flask(__name__, static_folder=None)
        app.config.update({
            'DISPLAY_NAME': self.descriptor.display_name,
            'CONTEXT_PARAMS': dict(self.descriptor.context_params),
            'RESOURCE_BASE': self.resource_base,
        })

        resource_base = self.resource_base
        welcome_files = self.descriptor.welcome_files

        @app.route('/', defaults={'path': ''})
        @app.route('/<path:path>')
        def serve_resource(path):
            """Serve a static resource from the resource root"""
            full_path = safe_join(resource_base, path)
            if full_path is None:
                abort(404)

            # Checked after normalization so dot segments cannot reach WEB-INF
            relative = os.path.relpath(full_path, resource_base).replace(os.sep, "/")
            if relative == ".":
                relative = ""
            if relative.split("/", 1)[0].upper() in PROTECTED_DIRECTORIES:
                abort(404)

            if os.path.isdir(full_path):
                if path and not path.endswith('/'):
                    return redirect(request.script_root + request.path + "/", code=302)
                for welcome in welcome_files:
                    candidate = posixpath.join(relative, welcome)
                    if os.path.isfile(os.path.join(resource_base, candidate)):
                        return send_from_directory(resource_base, candidate)
                abort(404)

            return send_from_directory(resource_base, relative)

        for code, location in self.descriptor.error_pages.items():
            if code not in default_exceptions:
                logger.warning(f"Ignoring error-page for unsupported status {code}")
                continue
            app.register_error_handler(code, self._error_page(code, location))

        return app

    def _error_page(self, code: int, location: str):
        resource_base = self.resource_base

        def render_error_page(error):
            page = location.lstrip('/')
            if not os.path.isfile(os.path.join(resource_base, page)):
                logger.warning(f"Error page {location} for {code} not found")
                return error.get_response()
            response = send_from_directory(resource_base, page)
            response.status_code = code
            return response

        return render_error_page

    def __call__(self, environ, start_response):
        if self.wsgi_app is None:
            raise ResourceError("Web application context used before load()")
        return self.wsgi_app(environ, start_response)


def create_webapp_context(config) -> WebAppContext:
    """
    Create the web application context for the configured resource root

    Context path '/', descriptor <root>/WEB-INF/web.xml, and the application's
    own modules winning over the container's.
    """
    context = WebAppContext(
        resource_base=config.webapp_root,
        descriptor_path=config.descriptor_path,
        context_path='/',
        app_classes_first=True,
    )
    return context.load()
