"""Tests for schema extraction and usage correlation."""
import pytest

from schemadrift.analyzer.elements import SchemaMapping, UsageInfo, attach_usage
from schemadrift.analyzer.schema_mapper import SchemaMapper
from schemadrift.errors import CrossReferenceError, ErrorCode

SCHEMA_PATH = 'packages/db/src/schema.ts'


@pytest.fixture
def mapping(brewery_config):
    return SchemaMapper.from_config(brewery_config).map_project(brewery_config)


@pytest.fixture
def declared(brewery_config, brewery_root):
    """Mapping without usage."""
    return SchemaMapper.from_config(brewery_config).extract_schema([brewery_root / SCHEMA_PATH])


class TestTables:
    """Table declarations."""

    def test_table_names_and_order(self, declared):
        assert list(declared.tables) == ['users', 'orders', 'legacyCoupons']

    def test_db_name_and_location(self, declared):
        coupons = declared.tables['legacyCoupons']
        assert coupons.metadata['db_name'] == 'legacy_coupons'
        assert coupons.file == SCHEMA_PATH
        assert coupons.line == 26
        assert coupons.definition_text.startswith('export const legacyCoupons = pgTable(')

    def test_columns_listed_on_table(self, declared):
        assert declared.tables['users'].metadata['columns'] == [
            'users.id', 'users.email', 'users.nickname', 'users.createdAt',
        ]

    def test_foreign_key_dependency(self, declared):
        assert declared.tables['orders'].dependencies == ('users',)
        assert declared.tables['users'].dependencies == ()

    def test_indexes_listed_on_table(self, declared):
        assert declared.tables['orders'].metadata['indexes'] == [
            'orders_user_idx', 'orders_user_status_idx', 'orders_quantity_idx',
        ]
        assert declared.tables['legacyCoupons'].metadata['indexes'] == []


class TestColumns:
    """Column constraint chains."""

    def test_compound_keys(self, declared):
        assert 'orders.userId' in declared.columns
        assert declared.columns['orders.userId'].bare_name == 'userId'

    def test_primary_key(self, declared):
        meta = declared.columns['users.id'].metadata
        assert meta['is_primary_key'] is True
        assert meta['nullable'] is False
        assert meta['has_default'] is True
        assert meta['data_type'] == 'uuid'

    def test_not_null_unique(self, declared):
        meta = declared.columns['users.email'].metadata
        assert meta['nullable'] is False
        assert meta['is_unique'] is True

    def test_nullable_by_default(self, declared):
        meta = declared.columns['orders.giftNote'].metadata
        assert meta['nullable'] is True
        assert meta['db_name'] == 'gift_note'
        assert meta['table_name'] == 'orders'
        assert meta['column_name'] == 'giftNote'

    def test_foreign_key(self, declared):
        column = declared.columns['orders.userId']
        assert column.metadata['is_foreign_key'] is True
        assert column.metadata['references_table'] == 'users'
        assert column.metadata['references_column'] == 'id'
        assert column.dependencies == ('users',)

    def test_enum_typed_column(self, declared):
        column = declared.columns['orders.status']
        assert column.metadata['enum_type'] == 'orderStatus'
        assert column.metadata['has_default'] is True
        assert column.dependencies == ('orderStatus',)


class TestIndexesAndEnums:
    """Index and enum declarations."""

    def test_index_columns(self, declared):
        index = declared.indexes['orders_user_status_idx']
        assert index.metadata['table_name'] == 'orders'
        assert index.metadata['columns'] == ['orders.userId', 'orders.status']
        assert index.metadata['column_names'] == ['userId', 'status']
        assert index.metadata['is_unique'] is False
        assert index.dependencies == ('orders', 'orders.userId', 'orders.status')

    def test_unique_index(self, declared):
        assert declared.indexes['users_email_idx'].metadata['is_unique'] is True

    def test_enum_values(self, declared):
        enum = declared.enums['orderStatus']
        assert enum.metadata['db_name'] == 'order_status'
        assert enum.metadata['values'] == ['pending', 'shipped', 'cancelled', 'refunded']


class TestEdgeCases:
    """Warnings instead of failures."""

    def test_no_schema_files(self, make_project):
        config = make_project({'apps/web/src/a.ts': 'export const a = 1;\n'})
        mapping = SchemaMapper.from_config(config).map_project(config)
        assert mapping.summary['total_elements'] == 0
        assert mapping.warnings == ['No schema files matched the configured patterns']

    def test_malformed_schema_file_is_skipped(self, make_project):
        config = make_project({
            'packages/db/src/schema/good.ts': 'export const a = pgTable("a", { id: integer("id") });\n',
            'packages/db/src/schema/bad.ts': 'export const b = pgTable("b", {\n',
        })
        mapping = SchemaMapper.from_config(config).map_project(config)
        assert list(mapping.tables) == ['a']
        assert mapping.schema_files == ['packages/db/src/schema/good.ts']
        assert len(mapping.warnings) == 1
        assert mapping.warnings[0].startswith('Skipped packages/db/src/schema/bad.ts')

    def test_duplicate_table_keeps_first(self, make_project):
        config = make_project({
            'packages/db/src/schema/a.ts': 'export const t = pgTable("t", { x: text("x") });\n',
            'packages/db/src/schema/b.ts': 'export const t = pgTable("t2", { y: text("y") });\n',
        })
        mapping = SchemaMapper.from_config(config).map_project(config)
        assert mapping.tables['t'].metadata['db_name'] == 't'
        assert list(mapping.columns) == ['t.x']
        assert any(w.startswith("Duplicate table 't'") for w in mapping.warnings)

    def test_spread_fields_are_skipped(self, make_project):
        config = make_project({
            'packages/db/src/schema.ts': 'export const t = pgTable("t", { ...timestamps, id: serial("id") });\n',
        })
        mapping = SchemaMapper.from_config(config).map_project(config)
        assert list(mapping.columns) == ['t.id']

    def test_custom_constructors(self, make_project):
        config = make_project(
            {'packages/db/src/schema.ts': 'export const t = sqliteTable("t", { id: integer("id") });\n'},
            table_constructors=['sqliteTable'],
        )
        mapping = SchemaMapper.from_config(config).map_project(config)
        assert list(mapping.tables) == ['t']


class TestUsageCorrelation:
    """Usage attached to elements from the source corpus."""

    def test_used_elements(self, mapping):
        assert mapping.tables['orders'].is_used
        assert mapping.columns['users.email'].is_used
        assert not mapping.tables['legacyCoupons'].is_used
        assert not mapping.columns['users.nickname'].is_used

    def test_select_usage_is_high(self, mapping):
        assert mapping.columns['users.email'].best_confidence == 'high'

    def test_import_usage(self, mapping):
        imports = [u for u in mapping.tables['orders'].usage if u.operation == 'import']
        assert len(imports) == 1
        assert imports[0].file == 'apps/web/src/orders.ts'
        assert imports[0].line == 3
        assert imports[0].confidence == 'low'

    def test_qualified_access_matches_one_column(self, mapping):
        """orders.id must not count as usage of users.id."""
        assert mapping.columns['orders.id'].is_used
        assert not mapping.columns['users.id'].is_used

    def test_schema_file_not_in_corpus(self, mapping):
        files = {u.file for e in mapping.elements() for u in e.usage}
        assert files == {'apps/web/src/orders.ts'}

    def test_summary_counts_match_details(self, mapping):
        summary = mapping.summary
        assert summary['tables'] == len(mapping.tables)
        assert summary['total_elements'] == summary['used_elements'] + summary['unused_elements']
        assert summary['total_usages'] == sum(len(e.usage) for e in mapping.elements())

    def test_parallel_matches_sequential(self, brewery_config, mapping):
        parallel = SchemaMapper(
            brewery_config.project_root, max_workers=4
        ).map_project(brewery_config)
        assert parallel.to_dict() == mapping.to_dict()


class TestAttachUsage:
    """The single usage reducer."""

    def test_unknown_key_raises(self, declared):
        usage = UsageInfo('a.ts', 1, 1, 'reference', 'x', 'low')
        with pytest.raises(CrossReferenceError) as excinfo:
            attach_usage(declared, [(('table', 'ghosts'), usage)])
        assert excinfo.value.code == ErrorCode.UNKNOWN_ELEMENT_KEY

    def test_input_left_unchanged(self, declared):
        usage = UsageInfo('a.ts', 1, 1, 'reference', 'x', 'low')
        result = attach_usage(declared, [(('table', 'orders'), usage)], warnings=['w'])
        assert result.tables['orders'].usage == (usage,)
        assert declared.tables['orders'].usage == ()
        assert result.warnings == ['w']
        assert declared.warnings == []

    def test_round_trip(self, mapping):
        assert SchemaMapping.from_dict(mapping.to_dict()).to_dict() == mapping.to_dict()
