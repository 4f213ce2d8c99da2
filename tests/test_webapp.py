import sys
import types
import textwrap

import pytest

from webapp_launcher.exceptions import ResourceError
from webapp_launcher.launcher_config import LauncherConfig
from webapp_launcher.webapp import (
    ServletDefinition,
    WebAppContext,
    application_class_path,
    create_webapp_context,
    install_application_class_path,
    mount_prefix,
    parse_descriptor,
    resolve_servlet,
)

WEB_XML = """<?xml version="1.0" encoding="UTF-8"?>
<web-app xmlns="http://xmlns.jcp.org/xml/ns/javaee" version="3.1">
    <display-name>Test Application</display-name>
    <context-param>
        <param-name>region</param-name>
        <param-value>eu</param-value>
    </context-param>
    <servlet>
        <servlet-name>greeter</servlet-name>
        <servlet-class>greeter:create_app</servlet-class>
        <init-param>
            <param-name>greeting</param-name>
            <param-value>Hi</param-value>
        </init-param>
    </servlet>
    <servlet-mapping>
        <servlet-name>greeter</servlet-name>
        <url-pattern>/greet/*</url-pattern>
        <url-pattern>*.do</url-pattern>
    </servlet-mapping>
    <welcome-file-list>
        <welcome-file>home.html</welcome-file>
        <welcome-file>index.html</welcome-file>
    </welcome-file-list>
    <error-page>
        <error-code>404</error-code>
        <location>/errors/404.html</location>
    </error-page>
</web-app>
"""

GREETER = """
from flask import Flask


def create_app(greeting):
    app = Flask(__name__)

    @app.route('/')
    def index():
        return f"{greeting} from greeter"

    return app
"""


@pytest.fixture
def webapp_root(tmp_path):
    root = tmp_path / 'webapp'
    (root / 'WEB-INF' / 'classes').mkdir(parents=True)
    (root / 'WEB-INF' / 'lib').mkdir()
    (root / 'WEB-INF' / 'web.xml').write_text(WEB_XML)
    (root / 'WEB-INF' / 'classes' / 'greeter.py').write_text(GREETER)
    (root / 'index.html').write_text('<h1>index</h1>')
    (root / 'home.html').write_text('<h1>home</h1>')
    (root / 'docs').mkdir()
    (root / 'docs' / 'index.html').write_text('<h1>docs</h1>')
    (root / 'empty').mkdir()
    (root / 'errors').mkdir()
    (root / 'errors' / '404.html').write_text('custom not found')
    (root / 'META-INF').mkdir()
    (root / 'META-INF' / 'MANIFEST.MF').write_text('Manifest-Version: 1.0')
    return root


@pytest.fixture
def client(webapp_root):
    context = WebAppContext(str(webapp_root)).load()
    return context.app.test_client()


def test_parse_descriptor(webapp_root):
    descriptor = parse_descriptor(str(webapp_root / 'WEB-INF' / 'web.xml'))

    assert descriptor.display_name == 'Test Application'
    assert descriptor.context_params == {'region': 'eu'}
    assert descriptor.welcome_files == ['home.html', 'index.html']
    assert descriptor.error_pages == {404: '/errors/404.html'}

    servlet = descriptor.servlets['greeter']
    assert servlet.servlet_class == 'greeter:create_app'
    assert servlet.init_params == {'greeting': 'Hi'}
    assert servlet.url_patterns == ['/greet/*', '*.do']


def test_parse_descriptor_defaults_welcome_files(tmp_path):
    path = tmp_path / 'web.xml'
    path.write_text('<web-app><display-name>Bare</display-name></web-app>')

    descriptor = parse_descriptor(str(path))

    assert descriptor.welcome_files == ['index.html', 'index.htm']
    assert descriptor.servlets == {}


def test_parse_descriptor_missing(tmp_path):
    with pytest.raises(ResourceError, match='not found'):
        parse_descriptor(str(tmp_path / 'web.xml'))


def test_parse_descriptor_malformed(tmp_path):
    path = tmp_path / 'web.xml'
    path.write_text('<web-app><servlet>')
    with pytest.raises(ResourceError, match='Malformed'):
        parse_descriptor(str(path))


def test_parse_descriptor_wrong_root(tmp_path):
    path = tmp_path / 'web.xml'
    path.write_text('<beans/>')
    with pytest.raises(ResourceError, match='expected <web-app>'):
        parse_descriptor(str(path))


def test_parse_descriptor_unknown_servlet_mapping(tmp_path):
    path = tmp_path / 'web.xml'
    path.write_text(textwrap.dedent("""
        <web-app>
            <servlet-mapping>
                <servlet-name>ghost</servlet-name>
                <url-pattern>/ghost/*</url-pattern>
            </servlet-mapping>
        </web-app>
    """))
    with pytest.raises(ResourceError, match='ghost'):
        parse_descriptor(str(path))


@pytest.mark.parametrize('pattern, expected', [
    ('/*', ''),
    ('/', ''),
    ('/api/*', '/api'),
    ('/api', '/api'),
    ('/api/v1/*', '/api/v1'),
    ('*.do', None),
])
def test_mount_prefix(pattern, expected):
    assert mount_prefix(pattern) == expected


def test_welcome_file_at_root(client):
    resp = client.get('/')
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == '<h1>home</h1>'


def test_welcome_file_in_subdirectory(client):
    resp = client.get('/docs/')
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == '<h1>docs</h1>'


def test_directory_without_slash_redirects(client):
    resp = client.get('/docs')
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/docs/')


def test_static_resource(client):
    resp = client.get('/index.html')
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == '<h1>index</h1>'


@pytest.mark.parametrize('path', [
    '/WEB-INF/web.xml',
    '/web-inf/web.xml',
    '/WEB-INF/classes/greeter.py',
    '/META-INF/MANIFEST.MF',
    '/WEB-INF/',
    '/./WEB-INF/web.xml',
    '/docs/../WEB-INF/web.xml',
    '/./WEB-INF/classes/greeter.py',
    '/errors/.././META-INF/MANIFEST.MF',
])
def test_protected_directories_are_hidden(client, path):
    resp = client.get(path)
    assert resp.status_code == 404
    assert resp.get_data(as_text=True) == 'custom not found'


def test_missing_resource_uses_error_page(client):
    resp = client.get('/nope.html')
    assert resp.status_code == 404
    assert resp.get_data(as_text=True) == 'custom not found'


def test_directory_without_welcome_file_is_404(client):
    assert client.get('/empty/').status_code == 404


def test_path_traversal_is_rejected(client):
    assert client.get('/../secret.txt').status_code == 404


def test_servlet_mounted_with_init_params(client):
    resp = client.get('/greet/')
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == 'Hi from greeter'


def test_context_params_exposed_in_config(webapp_root):
    context = WebAppContext(str(webapp_root)).load()
    assert context.app.config['CONTEXT_PARAMS'] == {'region': 'eu'}
    assert context.app.config['DISPLAY_NAME'] == 'Test Application'


def test_root_mapped_servlet_replaces_static_resources(webapp_root):
    (webapp_root / 'WEB-INF' / 'web.xml').write_text(textwrap.dedent("""
        <web-app>
            <servlet>
                <servlet-name>greeter</servlet-name>
                <servlet-class>greeter:create_app</servlet-class>
                <init-param>
                    <param-name>greeting</param-name>
                    <param-value>Root</param-value>
                </init-param>
            </servlet>
            <servlet-mapping>
                <servlet-name>greeter</servlet-name>
                <url-pattern>/*</url-pattern>
            </servlet-mapping>
        </web-app>
    """))
    client = WebAppContext(str(webapp_root)).load().app.test_client()
    assert client.get('/').get_data(as_text=True) == 'Root from greeter'


def test_non_root_context_path(webapp_root):
    from werkzeug.test import Client

    context = WebAppContext(str(webapp_root), context_path='/shop').load()
    client = Client(context)

    assert client.get('/shop/index.html').status_code == 200
    assert client.get('/index.html').status_code == 404


def test_missing_resource_root(tmp_path):
    with pytest.raises(ResourceError, match='Resource root not found'):
        WebAppContext(str(tmp_path / 'missing')).load()


def test_context_requires_load(webapp_root):
    context = WebAppContext(str(webapp_root))
    with pytest.raises(ResourceError):
        context({}, lambda status, headers: None)


def test_unimportable_servlet(webapp_root):
    servlet = ServletDefinition(name='broken', servlet_class='no_such_module:app')
    with pytest.raises(ResourceError, match='Cannot import'):
        resolve_servlet(servlet)


def test_servlet_without_attribute_separator():
    servlet = ServletDefinition(name='bad', servlet_class='nodots')
    with pytest.raises(ResourceError, match='module:attribute'):
        resolve_servlet(servlet)


def test_servlet_missing_attribute():
    servlet = ServletDefinition(name='bad', servlet_class='os.path:no_such_thing')
    with pytest.raises(ResourceError, match='no attribute'):
        resolve_servlet(servlet)


def test_servlet_dotted_reference():
    servlet = ServletDefinition(name='join', servlet_class='os.path.join')
    assert resolve_servlet(servlet) is __import__('os').path.join


def test_application_class_path_order(webapp_root):
    lib = webapp_root / 'WEB-INF' / 'lib'
    (lib / 'b-vendor').mkdir()
    (lib / 'a-bundle.zip').write_bytes(b'')
    (lib / 'notes.txt').write_text('ignored')

    paths = application_class_path(str(webapp_root))

    assert [p.rsplit('/', 1)[-1] for p in paths] == ['classes', 'a-bundle.zip', 'b-vendor']


def test_application_classes_take_priority(webapp_root, monkeypatch):
    vendor = webapp_root / 'WEB-INF' / 'lib' / 'vendor' / 'shadowed_lib'
    vendor.mkdir(parents=True)
    (vendor / '__init__.py').write_text("VERSION = 'application'\n")

    container_copy = types.ModuleType('shadowed_lib')
    container_copy.VERSION = 'container'
    monkeypatch.setitem(sys.modules, 'shadowed_lib', container_copy)

    evicted = install_application_class_path(
        application_class_path(str(webapp_root)))

    import shadowed_lib
    assert 'shadowed_lib' in evicted
    assert shadowed_lib.VERSION == 'application'
    assert sys.path[0].endswith('classes')


def test_sample_webapp_serves_static_and_servlet(sample_webapp):
    context = create_webapp_context(LauncherConfig(webapp_root=sample_webapp))
    client = context.app.test_client()

    assert 'Hello Web Application' in client.get('/').get_data(as_text=True)
    assert client.get('/css/site.css').status_code == 200

    resp = client.get('/hello/?name=tester')
    assert resp.status_code == 200
    assert resp.get_json() == {'message': 'Hello, tester!'}


def test_dot_segments_still_serve_public_resources(client):
    resp = client.get('/docs/../index.html')
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == '<h1>index</h1>'


def test_init_params_ignored_for_wsgi_app(webapp_root, monkeypatch):
    (webapp_root / 'WEB-INF' / 'classes' / 'ready_app.py').write_text(
        "from flask import Flask\n\napp = Flask(__name__)\n")
    monkeypatch.syspath_prepend(str(webapp_root / 'WEB-INF' / 'classes'))
    servlet = ServletDefinition(name='ready', servlet_class='ready_app:app',
                                init_params={'greeting': 'Hi'})

    app = resolve_servlet(servlet)

    assert app is sys.modules['ready_app'].app


def test_factory_rejecting_init_params_is_resource_error(webapp_root, monkeypatch):
    (webapp_root / 'WEB-INF' / 'classes' / 'strict_factory.py').write_text(
        "def create_app():\n    return lambda environ, start_response: []\n")
    monkeypatch.syspath_prepend(str(webapp_root / 'WEB-INF' / 'classes'))
    servlet = ServletDefinition(name='strict', servlet_class='strict_factory:create_app',
                                init_params={'greeting': 'Hi'})

    with pytest.raises(ResourceError, match='rejected init-params'):
        resolve_servlet(servlet)
