"""
Render the nginx config and hand over to nginx.

Only ${OTEL_EXPORTER_ENDPOINT} is substituted; nginx's own $variables must
survive rendering untouched.
"""
import argparse
import logging
import os
import sys

logger = logging.getLogger(__name__)

ENDPOINT_VAR = "OTEL_EXPORTER_ENDPOINT"
DEFAULT_ENDPOINT = "host.docker.internal:4317"


def collector_endpoint(environ=None):
    env = os.environ if environ is None else environ
    return env.get(ENDPOINT_VAR) or DEFAULT_ENDPOINT


def render_config(template, endpoint):
    return template.replace("${%s}" % ENDPOINT_VAR, endpoint)


def render_file(template_path, output_path, environ=None):
    endpoint = collector_endpoint(environ)
    logger.info("Using OTLP endpoint: %s", endpoint)
    with open(template_path, encoding="utf-8") as f:
        rendered = render_config(f.read(), endpoint)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(rendered)
    return endpoint


def main(argv=None):
    parser = argparse.ArgumentParser(description="Render nginx.conf and start nginx in the foreground")
    parser.add_argument("--template", default="/etc/nginx/nginx.conf.template")
    parser.add_argument("--output", default="/etc/nginx/nginx.conf")
    parser.add_argument("--no-exec", action="store_true", help="render only, do not start nginx")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    render_file(args.template, args.output)
    if args.no_exec:
        return 0
    os.execvp("nginx", ["nginx", "-g", "daemon off;"])


if __name__ == "__main__":
    sys.exit(main())
