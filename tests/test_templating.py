import pytest

from conftest import primary
from previews.models import ContainerType, ServiceConfig
from previews.templating import (
    TemplateRenderError,
    apply_templating_for_application_companion,
    build_context,
)


def _template(**kwargs) -> ServiceConfig:
    kwargs.setdefault("service_name", "companion")
    kwargs.setdefault("image", "example/companion:1")
    return ServiceConfig(container_type=ContainerType.APPLICATION_COMPANION, **kwargs)


def test_renders_application_name_everywhere():
    template = _template(
        service_name="{{ application.name }}-openid",
        image="example/openid:{{ application.name }}",
        env={"BASE_PATH": "/{{ application.name }}/openid"},
        labels={"traefik.frontend.rule": "PathPrefix:/{{ application.name }}/"},
        volumes={"/etc/openid/realm.json": '{"realm": "{{ application.name }}"}'},
    )

    resolved = apply_templating_for_application_companion(template, "review-1", [])

    assert resolved.service_name == "review-1-openid"
    assert resolved.image == "example/openid:review-1"
    assert resolved.env == {"BASE_PATH": "/review-1/openid"}
    assert resolved.labels == {"traefik.frontend.rule": "PathPrefix:/review-1/"}
    assert resolved.volumes == {"/etc/openid/realm.json": '{"realm": "review-1"}'}
    assert resolved.container_type == ContainerType.APPLICATION_COMPANION


def test_services_are_visible_with_name_port_and_type():
    services = [
        primary("web", port=8080),
        primary("db", port=5432).with_container_type(ContainerType.REPLICA),
    ]
    template = _template(
        env={"UPSTREAMS": "{% for s in services %}{{ s.name }}:{{ s.port }}/{{ s.type }} {% endfor %}"},
    )

    resolved = apply_templating_for_application_companion(template, "review-1", services)

    assert resolved.env["UPSTREAMS"] == "web:8080/primary db:5432/replica "


def test_companion_and_replica_tests():
    services = [
        primary("web"),
        primary("db").with_container_type(ContainerType.REPLICA),
        primary("auth").with_container_type(ContainerType.APPLICATION_COMPANION),
    ]
    template = _template(
        env={
            "OWN": "{% for s in services if s is not companion %}{{ s.name }},{% endfor %}",
            "REPLICAS": "{% for s in services if s is replica %}{{ s.name }}{% endfor %}",
        }
    )

    resolved = apply_templating_for_application_companion(template, "review-1", services)

    assert resolved.env == {"OWN": "web,db,", "REPLICAS": "db"}


def test_context_services_are_not_mutated():
    services = [primary("web")]
    template = _template(service_name="{{ application.name }}-proxy")

    apply_templating_for_application_companion(template, "review-1", services)

    assert services == [primary("web")]
    assert template.service_name == "{{ application.name }}-proxy"


@pytest.mark.parametrize(
    "source",
    [
        "{{ missing }}",
        "{{ application.missing }}",
        "{% for s in services %}",
        "{{ application.name | no_such_filter }}",
    ],
)
def test_unresolvable_expressions_fail(source):
    template = _template(env={"BROKEN": source})

    with pytest.raises(TemplateRenderError) as exc:
        apply_templating_for_application_companion(template, "review-1", [])

    assert exc.value.template_name == "companion"


def test_rendered_service_name_must_be_valid():
    template = _template(service_name="{{ application.name | upper }}")

    with pytest.raises(TemplateRenderError):
        apply_templating_for_application_companion(template, "review-1", [])


def test_sandbox_blocks_attribute_escapes():
    template = _template(env={"X": "{{ application.__class__.__mro__ }}"})

    with pytest.raises(TemplateRenderError):
        apply_templating_for_application_companion(template, "review-1", [])


def test_build_context():
    assert build_context("review-1", [primary("web", port=81)]) == {
        "application": {"name": "review-1"},
        "services": [{"name": "web", "port": 81, "type": "primary"}],
    }
