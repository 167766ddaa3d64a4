"""
Worker bundle generation.

A bundle is one ES-module worker script that embeds the app's code files and a
path -> URL map for assets offloaded to R2. Assets are never inlined: the
worker answers asset paths with a 301 to the offloaded URL.

`dispatch` mirrors the script's routing in Python so the same behavior can be
previewed locally and asserted in tests without a JS runtime.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from apphost.core.exceptions import SizeLimitExceeded
from apphost.modules.builds.classifier import file_extension

logger = logging.getLogger(__name__)

MAX_BUNDLE_BYTES = 10 * 1024 * 1024

BACKEND_PREFIX = "/api/supabase"

PUBLIC_ENV_KEYS = ("APP_ID", "ENVIRONMENT", "API_BASE_URL", "SUPABASE_URL", "SUPABASE_ANON_KEY")
PUBLIC_ENV_PREFIXES = ("PUBLIC_", "VITE_")

CODE_CONTENT_TYPES = {
    "html": "text/html",
    "js": "application/javascript",
    "mjs": "application/javascript",
    "css": "text/css",
    "json": "application/json",
    "xml": "application/xml",
    "txt": "text/plain",
    "map": "application/json",
}

HTML_CACHE_CONTROL = "no-cache"
CODE_CACHE_CONTROL = "public, max-age=86400"

_PLACEHOLDER = re.compile(r"__[A-Z_]+?__")

_WORKER_TEMPLATE = """// Code files embedded in the worker
const CODE_FILES = __CODE_FILES__;

// Offloaded asset URLs
const ASSET_URLS = __ASSET_URLS__;

const ENVIRONMENT = __ENVIRONMENT__;
const BACKEND_PREFIX = __BACKEND_PREFIX__;
const PUBLIC_ENV_KEYS = __PUBLIC_ENV_KEYS__;
const PUBLIC_ENV_PREFIXES = __PUBLIC_ENV_PREFIXES__;

const CONTENT_TYPES = __CONTENT_TYPES__;

export default {
  async fetch(request, env, ctx) {
    const url = new URL(request.url);
    const pathname = url.pathname;

    if (pathname.startsWith('/api/')) {
      return handleApiRequest(request, env || {});
    }

    const cleanPath = pathname === '/' ? 'index.html' : pathname.slice(1);

    if (Object.prototype.hasOwnProperty.call(ASSET_URLS, cleanPath)) {
      return Response.redirect(ASSET_URLS[cleanPath], 301);
    }

    if (Object.prototype.hasOwnProperty.call(CODE_FILES, cleanPath)) {
      const contentType = getContentType(cleanPath);
      if (cleanPath === 'index.html') {
        return htmlResponse(injectEnv(CODE_FILES[cleanPath], env || {}));
      }
      return new Response(CODE_FILES[cleanPath], {
        headers: {
          'Content-Type': contentType,
          'Cache-Control': contentType === 'text/html' ? '__HTML_CACHE__' : '__CODE_CACHE__',
          'Access-Control-Allow-Origin': '*'
        }
      });
    }

    // SPA fallback
    if (Object.prototype.hasOwnProperty.call(CODE_FILES, 'index.html')) {
      return htmlResponse(injectEnv(CODE_FILES['index.html'], env || {}));
    }

    return new Response('Not found', { status: 404 });
  }
};

function htmlResponse(html) {
  return new Response(html, {
    status: 200,
    headers: {
      'Content-Type': 'text/html',
      'Cache-Control': '__HTML_CACHE__',
      'X-Frame-Options': 'ALLOWALL'
    }
  });
}

function getContentType(path) {
  const name = path.split('/').pop();
  const ext = name.includes('.') ? name.split('.').pop().toLowerCase() : '';
  return CONTENT_TYPES[ext] || 'text/plain';
}

function getPublicEnvVars(env) {
  const publicVars = ENVIRONMENT ? { ENVIRONMENT } : {};
  for (const key of Object.keys(env)) {
    if (PUBLIC_ENV_KEYS.includes(key) || PUBLIC_ENV_PREFIXES.some(p => key.startsWith(p))) {
      if (typeof env[key] === 'string') {
        publicVars[key] = env[key];
      }
    }
  }
  return publicVars;
}

function injectEnv(html, env) {
  const envScript = `<script>window.ENV = ${JSON.stringify(getPublicEnvVars(env))};</script>`;
  if (html.includes('</head>')) {
    return html.replace('</head>', envScript + '</head>');
  }
  if (html.includes('<body>')) {
    return html.replace('<body>', '<body>' + envScript);
  }
  return envScript + html;
}

function jsonResponse(body, status) {
  return new Response(JSON.stringify(body), {
    status: status,
    headers: { 'Content-Type': 'application/json' }
  });
}

async function handleApiRequest(request, env) {
  const url = new URL(request.url);
  const path = url.pathname;

  if (path === BACKEND_PREFIX || path.startsWith(BACKEND_PREFIX + '/')) {
    const backendUrl = env.SUPABASE_URL;
    const backendKey = env.SUPABASE_SERVICE_KEY || env.SUPABASE_ANON_KEY;
    if (!backendUrl || !backendKey) {
      return jsonResponse({ error: 'Database not configured' }, 503);
    }
    const targetUrl = backendUrl.replace(/\\/$/, '') + path.slice(BACKEND_PREFIX.length) + url.search;
    const proxyRequest = new Request(targetUrl, request);
    proxyRequest.headers.set('apikey', backendKey);
    proxyRequest.headers.set('Authorization', `Bearer ${backendKey}`);
    return fetch(proxyRequest);
  }

  return jsonResponse({ error: 'API endpoint not found' }, 404);
}
"""


@dataclass
class WorkerBundle:
    code_files: Dict[str, str]
    asset_urls: Dict[str, str]
    environment: str
    script: str

    @property
    def size_bytes(self) -> int:
        return len(self.script.encode("utf-8"))

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / 1024 / 1024, 2)


@dataclass
class WorkerResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    proxy_target: Optional[str] = None


def _js(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def _as_text(content) -> str:
    return content.decode("utf-8") if isinstance(content, bytes) else content


def generate_worker_bundle(code_files: Mapping[str, str], asset_urls: Mapping[str, str], environment: str) -> WorkerBundle:
    """Render the worker script for one environment."""
    code = {path: _as_text(content) for path, content in code_files.items()}
    assets = dict(asset_urls)
    replacements = {
        "__CODE_FILES__": _js(code),
        "__ASSET_URLS__": _js(assets),
        "__ENVIRONMENT__": _js(environment),
        "__BACKEND_PREFIX__": _js(BACKEND_PREFIX),
        "__PUBLIC_ENV_KEYS__": _js(list(PUBLIC_ENV_KEYS)),
        "__PUBLIC_ENV_PREFIXES__": _js(list(PUBLIC_ENV_PREFIXES)),
        "__CONTENT_TYPES__": _js(CODE_CONTENT_TYPES),
        "__HTML_CACHE__": HTML_CACHE_CONTROL,
        "__CODE_CACHE__": CODE_CACHE_CONTROL,
    }
    # Placeholders are substituted in one pass so embedded file content is never rescanned.
    script = _substitute(_WORKER_TEMPLATE, replacements)
    bundle = WorkerBundle(code_files=code, asset_urls=assets, environment=environment, script=script)
    logger.info(
        f"[WorkerBundle] Generated {environment} bundle: {len(code)} code files, "
        f"{len(assets)} asset URLs, {bundle.size_mb} MB"
    )
    return bundle


def _substitute(template: str, replacements: Dict[str, str]) -> str:
    return _PLACEHOLDER.sub(lambda m: replacements[m.group(0)], template)


def check_bundle_size(bundle: WorkerBundle, limit_bytes: int = MAX_BUNDLE_BYTES) -> None:
    """Raise SizeLimitExceeded when the serialized script is over the limit."""
    if bundle.size_bytes > limit_bytes:
        raise SizeLimitExceeded(bundle.size_bytes, limit_bytes)


def public_env_vars(env: Mapping[str, str], environment: Optional[str] = None) -> Dict[str, str]:
    """Allow-listed runtime vars; the bundle's own environment is the ENVIRONMENT default."""
    public = {"ENVIRONMENT": environment} if environment else {}
    public.update(
        (key, value)
        for key, value in env.items()
        if key in PUBLIC_ENV_KEYS or key.startswith(PUBLIC_ENV_PREFIXES)
    )
    return public


def content_type_for_code(path: str) -> str:
    return CODE_CONTENT_TYPES.get(file_extension(path), "text/plain")


def inject_env(html: str, env: Mapping[str, str], environment: Optional[str] = None) -> str:
    env_script = f"<script>window.ENV = {json.dumps(public_env_vars(env, environment), separators=(',', ':'))};</script>"
    if "</head>" in html:
        return html.replace("</head>", env_script + "</head>", 1)
    if "<body>" in html:
        return html.replace("<body>", "<body>" + env_script, 1)
    return env_script + html


def _html_response(html: str, env: Mapping[str, str], environment: Optional[str]) -> WorkerResponse:
    return WorkerResponse(
        status=200,
        headers={
            "Content-Type": "text/html",
            "Cache-Control": HTML_CACHE_CONTROL,
            "X-Frame-Options": "ALLOWALL",
        },
        body=inject_env(html, env, environment),
    )


def _json_response(body: dict, status: int) -> WorkerResponse:
    return WorkerResponse(status=status, headers={"Content-Type": "application/json"}, body=json.dumps(body))


def dispatch(bundle: WorkerBundle, pathname: str, env: Optional[Mapping[str, str]] = None) -> WorkerResponse:
    """Answer a request path the way the deployed worker script does."""
    env = env or {}

    if pathname.startswith("/api/"):
        if pathname == BACKEND_PREFIX or pathname.startswith(BACKEND_PREFIX + "/"):
            backend_url = env.get("SUPABASE_URL")
            backend_key = env.get("SUPABASE_SERVICE_KEY") or env.get("SUPABASE_ANON_KEY")
            if not backend_url or not backend_key:
                return _json_response({"error": "Database not configured"}, 503)
            target = backend_url.rstrip("/") + pathname[len(BACKEND_PREFIX):]
            return WorkerResponse(status=200, proxy_target=target)
        return _json_response({"error": "API endpoint not found"}, 404)

    clean_path = "index.html" if pathname == "/" else pathname[1:]

    if clean_path in bundle.asset_urls:
        return WorkerResponse(status=301, headers={"Location": bundle.asset_urls[clean_path]})

    if clean_path in bundle.code_files:
        if clean_path == "index.html":
            return _html_response(bundle.code_files[clean_path], env, bundle.environment)
        content_type = content_type_for_code(clean_path)
        return WorkerResponse(
            status=200,
            headers={
                "Content-Type": content_type,
                "Cache-Control": HTML_CACHE_CONTROL if content_type == "text/html" else CODE_CACHE_CONTROL,
                "Access-Control-Allow-Origin": "*",
            },
            body=bundle.code_files[clean_path],
        )

    if "index.html" in bundle.code_files:
        return _html_response(bundle.code_files["index.html"], env, bundle.environment)

    return WorkerResponse(status=404, body="Not found")
