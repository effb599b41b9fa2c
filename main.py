#!/usr/bin/env python3
# main.py
import sys
import json
from pathlib import Path

import click

from secufix import ai_analyzer, publisher, reporting
from secufix.config import CONFIG_FILENAME, configure_logging, load_config
from secufix.engine import ScanEngine
from secufix.errors import SecuFixError
from secufix.fetcher import read_local_manifests

STATUS_COLORS = {"secure": "green", "vulnerable": "red", "warning": "yellow"}

output_options = [
    click.option("--format", "output_format", type=click.Choice(['text', 'json', 'html'], case_sensitive=False),
                 default='text', show_default=True, help="Output format."),
    click.option("-o", "--output-file", type=click.Path(dir_okay=False), help="Save the report to this file."),
    click.option("--no-live-lookup", is_flag=True, help="Only use the static secure-version table."),
    click.option("--force-update", is_flag=True, help="Rewrite pom.xml versions even when equal."),
    click.option("--ai-review", is_flag=True, help="Ask the AI reviewer about each manifest."),
    click.option("--version-ordering", type=click.Choice(['lexicographic', 'semantic']),
                 help="How registry versions are compared."),
]


def with_output_options(func):
    for option in reversed(output_options):
        func = option(func)
    return func


def _build_config(ctx, no_live_lookup, force_update, ai_review, version_ordering, **extra):
    # Unset flags leave the config.yaml value alone
    return ctx.obj["config"].with_overrides(
        live_lookup=False if no_live_lookup else None,
        force_update=True if force_update else None,
        ai_review=True if ai_review else None,
        version_ordering=version_ordering,
        **extra,
    )


def _emit(report, output_format, output_file):
    rendered = reporting.write_report(report, output_format.lower(), output_file)
    if not output_file or output_format.lower() != 'html':
        click.echo(rendered)
    click.secho(f"Status: {report.status} - {report.message}", fg=STATUS_COLORS.get(report.status), err=True)


@click.group(context_settings=dict(help_option_names=['-h', '--help']))
@click.option("--config", "config_path", default=CONFIG_FILENAME, show_default=True, help="YAML configuration file.")
@click.option("--log-level", type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help="Logging verbosity (overrides config).")
@click.pass_context
def cli(ctx, config_path, log_level):
    """
    SecuFix: scans dependency manifests (package.json, requirements.txt, pom.xml)
    for known vulnerabilities and proposes secure versions.
    """
    config = load_config(config_path)
    config = config.with_overrides(log_level=log_level)
    configure_logging(config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("scan-repo")
@click.argument("repo_url")
@with_output_options
@click.pass_context
def scan_repo(ctx, repo_url, output_format, output_file, no_live_lookup, force_update, ai_review, version_ordering):
    """Scans the manifests at the root of a GitHub repository."""
    config = _build_config(ctx, no_live_lookup, force_update, ai_review, version_ordering)
    try:
        report = ScanEngine(config).scan_repository(repo_url)
    except SecuFixError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    _emit(report, output_format, output_file)


@cli.command("scan-path")
@click.argument("target", type=click.Path(exists=True, resolve_path=True))
@with_output_options
@click.option("--fix", is_flag=True, help="Write upgraded manifests back to disk.")
@click.option("--no-backup", is_flag=True, help="Do not keep .bak copies when fixing.")
@click.pass_context
def scan_path(ctx, target, output_format, output_file, no_live_lookup, force_update, ai_review, version_ordering,
              fix, no_backup):
    """Scans a local manifest file, or the manifests in a local directory."""
    config = _build_config(ctx, no_live_lookup, force_update, ai_review, version_ordering,
                           auto_fix=True if fix else None, backup_files=False if no_backup else None)
    try:
        manifests = read_local_manifests(target)
    except SecuFixError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)

    report = ScanEngine(config).scan_manifests(manifests)
    _emit(report, output_format, output_file)

    if config.auto_fix:
        written = publisher.apply_updates(report, directory=Path(target), backup=config.backup_files)
        click.secho(f"Updated {len(written)} file(s).", fg="green", err=True)


@cli.command("review")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, resolve_path=True))
@click.option("--malware-only", is_flag=True, help="Only report packages flagged as malicious.")
@click.option("--save", is_flag=True, help="Save the full review next to the manifest as <name>-scan-results.json.")
@click.pass_context
def review(ctx, manifest, malware_only, save):
    """Asks the AI reviewer for an opinion on a single manifest."""
    config = ctx.obj["config"]
    path = Path(manifest)
    content = path.read_text(encoding='utf-8')

    result = ai_analyzer.review_manifest(content, path.name, config, malware_only=malware_only)
    if "error" in result:
        click.secho(f"Error: {result['error']}", fg="red", err=True)
        sys.exit(1)

    if save:
        result_path = path.with_name(f"{path.stem}-scan-results.json")
        result_path.write_text(json.dumps(result, indent=2), encoding='utf-8')
        click.echo(f"Results saved to {result_path}")

    buckets = result["vulnerabilities"]
    click.echo(f"High: {len(buckets['high'])}  Medium: {len(buckets['medium'])}  Low: {len(buckets['low'])}")
    for entry in buckets["high"]:
        click.echo(f"- {entry.get('packageName')}@{entry.get('version')}: {entry.get('description', '')}")
        click.echo(f"  Recommendation: {entry.get('recommendation', '')}")

    malicious = ai_analyzer.get_malicious_packages(content, path.name, config, review=result)
    if malicious["maliciousPackages"]:
        click.secho("WARNING: POTENTIALLY MALICIOUS PACKAGES DETECTED", fg="red", err=True)
        for line in malicious["recommendations"]:
            click.secho(f"  {line}", fg="red", err=True)
        sys.exit(1)
    click.secho("No malicious packages detected.", fg="green")


@cli.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=3000, show_default=True, type=int)
@click.pass_context
def serve(ctx, host, port):
    """Runs the HTTP API (POST /scan, GET /health)."""
    from secufix.server import create_app
    create_app(ctx.obj["config"]).run(host=host, port=port)


if __name__ == "__main__":
    cli()
