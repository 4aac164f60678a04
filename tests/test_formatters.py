import json

from tools import formatters
from tools.models import (
    AccessProfile,
    Account,
    AttributeMapping,
    Identity,
    IdentityEvent,
    Role,
)


def mapping(**overrides) -> AttributeMapping:
    fields = dict(
        profile_name="Employees",
        profile_id="p-1",
        target_attribute="email",
        transform_type="lower",
        transform_name="Lowercase",
        source_attributes="mail",
        is_required=True,
        expression="N/A",
        description="N/A",
    )
    fields.update(overrides)
    return AttributeMapping(**fields)


def identity_event(**overrides) -> IdentityEvent:
    fields = dict(
        timestamp="2026-03-01T12:30:00Z",
        event_type="ROLE_ASSIGNED",
        action="assign",
        item_type="Role",
        item_name="Admins",
        item_id="r-1",
        change_type="ADDED",
        actor="System",
        details="{}",
    )
    fields.update(overrides)
    return IdentityEvent(**fields)


class TestJson:
    def test_models_use_camel_case_and_drop_none(self):
        text = formatters.to_json([Identity(id="id-1", display_name="John")])
        assert json.loads(text) == [{"id": "id-1", "displayName": "John"}]
        assert text.startswith("[\n  {")


class TestIdentityMarkdown:
    def test_full_document(self):
        identity = Identity.model_validate({
            "id": "id-1",
            "name": "jdoe",
            "displayName": "John Doe",
            "email": "jdoe@example.com",
            "manager": {"id": "m-1", "name": "boss"},
        })
        md = formatters.format_identity_markdown(
            identity,
            accounts=[Account(name="jdoe-ad", source_name="Active Directory", disabled=True)],
            access_profiles=[AccessProfile(name="Finance", description="Finance apps")],
            roles=[Role(name="Approver")],
        )

        assert md.startswith("# Identity: jdoe\n\n## Basic Information\n\n")
        assert "- **Display Name**: John Doe\n" in md
        assert "- **Department**: N/A\n" in md
        assert "- **Manager**: boss (m-1)\n" in md
        assert "## Accounts (1)" in md
        assert "- **jdoe-ad** - Active Directory\n  - Status: DISABLED\n" in md
        assert "## Access Profiles (1)" in md
        assert "  - Finance apps\n" in md
        assert "## Roles (1)\n\n- **Approver**\n" in md

    def test_empty_sections_are_omitted(self):
        md = formatters.format_identity_markdown(Identity(id="id-1"), accounts=[], roles=None)
        assert md.startswith("# Identity: id-1")
        assert "## Accounts" not in md
        assert "## Roles" not in md


class TestMappingsTable:
    def test_empty(self):
        assert formatters.format_mappings_table([]) == formatters.NO_MAPPINGS

    def test_layout_and_truncation(self):
        long_expression = "x" * 60
        table = formatters.format_mappings_table([mapping(expression=long_expression)])
        lines = table.split("\n")

        assert len(lines) == 5
        assert lines[0] == lines[2] == lines[4]
        assert lines[0].startswith("+-") and lines[0].endswith("-+")
        assert "| Profile Name " in lines[1]
        assert "| Yes " in lines[3]
        assert "x" * 47 + "..." in lines[3]
        assert "x" * 48 not in lines[3]
        assert len({len(line) for line in lines}) == 1

    def test_exactly_fifty_chars_is_not_truncated(self):
        table = formatters.format_mappings_table([mapping(expression="y" * 50)])
        assert "y" * 50 in table
        assert "..." not in table


class TestMappingsCsv:
    def test_empty(self):
        assert formatters.format_mappings_csv([]) == formatters.NO_MAPPINGS

    def test_header_unquoted_rows_quoted(self):
        csv_text = formatters.format_mappings_csv([mapping(), mapping(target_attribute="uid", is_required=False)])
        lines = csv_text.split("\n")

        assert lines[0] == (
            "Profile Name,Profile ID,Target Attribute,Transform Type,Transform Name,"
            "Source Attributes,Required,Expression,Description"
        )
        assert lines[1] == '"Employees","p-1","email","lower","Lowercase","mail","true","N/A","N/A"'
        assert lines[2].startswith('"Employees","p-1","uid"')
        assert '"false"' in lines[2]
        assert not csv_text.endswith("\n")

    def test_embedded_quotes_are_doubled(self):
        csv_text = formatters.format_mappings_csv([mapping(expression='$attr == "x"')])
        assert '"$attr == ""x"""' in csv_text


class TestMappingsJson:
    def test_counts_and_camel_case(self):
        data = json.loads(formatters.format_mappings_json(2, [mapping()]))
        assert data["profileCount"] == 2
        assert data["mappingCount"] == 1
        assert data["mappings"][0]["targetAttribute"] == "email"
        assert data["mappings"][0]["isRequired"] is True


class TestIdentityEvents:
    def test_parse_timestamp(self):
        parsed = formatters.parse_timestamp("2026-03-01T12:30:00Z")
        assert parsed.hour == 12
        assert parsed.utcoffset().total_seconds() == 0
        assert formatters.parse_timestamp("not a date") is None
        assert formatters.parse_timestamp(None) is None

    def test_empty(self):
        assert formatters.format_identity_events([]) == formatters.NO_EVENTS
        assert formatters.format_events_summary([], 30) == formatters.NO_EVENTS

    def test_detailed_groups_by_day_newest_first(self):
        text = formatters.format_identity_events([
            identity_event(timestamp="2026-02-27T08:00:00Z", item_name="Old"),
            identity_event(
                timestamp="2026-03-01T12:30:00Z",
                change_type="REMOVED",
                event_type="ROLE_REMOVED",
                item_name="New",
                source="Workday",
                details='{"reason":"leaver"}',
            ),
        ])

        assert text.startswith("# Identity Access Change History\n\nFound 2 events:\n\n")
        assert text.index("## Sun Mar 01 2026") < text.index("## Fri Feb 27 2026")
        assert "### ❌ 12:30:00 UTC - REMOVED Role\n" in text
        assert "### ✅ 08:00:00 UTC - ADDED Role\n" in text
        assert "- **Source**: Workday\n" in text
        assert '- **Details**: {"reason":"leaver"}\n' in text
        assert text.count("- **Details**") == 1

    def test_modified_icon(self):
        text = formatters.format_identity_events([identity_event(change_type="MODIFIED")])
        assert "### 🔄 12:30:00 UTC - MODIFIED Role" in text

    def test_summary(self):
        text = formatters.format_events_summary([
            identity_event(),
            identity_event(item_name="Auditors"),
            identity_event(change_type="REMOVED", item_type="Entitlement", item_name="sudo", actor="bob"),
        ], 14)

        assert "- **Period**: last 14 days\n" in text
        assert "- **Total events**: 3\n" in text
        assert "- ADDED: 2\n" in text
        assert "- REMOVED: 1\n" in text
        assert "- Role: 2\n" in text
        assert "- 2026-03-01 ❌ REMOVED Entitlement: sudo (by bob)\n" in text
