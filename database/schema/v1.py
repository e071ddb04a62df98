"""Schema v1 - Market storage layout.

This version includes tables for:
- Market listings and the ordered active-listing index
- Fee policy (single row)
- Role membership and role administrators
- Market state (pause flag, active implementation, collected service fees)

Asset ids and currency amounts are NUMERIC(78, 0) so that 256-bit
identifiers and smallest-unit amounts fit without loss.
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'market_listings',
            'columns': [
                {'name': 'asset_id', 'type': 'NUMERIC(78, 0)', 'primary_key': True},
                {'name': 'seller', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'NUMERIC(78, 0)', 'nullable': False},
                {'name': 'expiry', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'restricted_buyer', 'type': 'TEXT'},
                {'name': 'sold', 'type': 'BOOL', 'nullable': False, 'default': 'false'},
                {'name': 'deleted', 'type': 'BOOL', 'nullable': False, 'default': 'false'},
                {'name': 'revision', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_market_listings_seller', 'columns': ['seller']}
            ]
        },
        {
            'name': 'active_listings',
            'columns': [
                {'name': 'asset_id', 'type': 'NUMERIC(78, 0)', 'primary_key': True},
                {'name': 'position', 'type': 'BIGSERIAL'}
            ],
            'foreign_keys': [
                {'columns': ['asset_id'], 'references': 'market_listings(asset_id)'}
            ],
            'indexes': [
                {'name': 'idx_active_listings_position', 'columns': ['position']}
            ]
        },
        {
            'name': 'fee_policy',
            'columns': [
                {'name': 'id', 'type': 'INT8', 'primary_key': True, 'default': '1'},
                {'name': 'percentage', 'type': 'INT8', 'nullable': False},
                {'name': 'min_percentage', 'type': 'INT8', 'nullable': False},
                {'name': 'max_percentage', 'type': 'INT8', 'nullable': False},
                {'name': 'flat_service_fee', 'type': 'NUMERIC(78, 0)', 'nullable': False},
                {'name': 'receiver_a', 'type': 'TEXT', 'nullable': False},
                {'name': 'receiver_b', 'type': 'TEXT', 'nullable': False},
                {'name': 'receiver_a_share', 'type': 'INT8', 'nullable': False, 'default': '50'}
            ]
        },
        {
            'name': 'role_members',
            'columns': [
                {'name': 'role', 'type': 'TEXT'},
                {'name': 'principal', 'type': 'TEXT'},
                {'name': 'granted_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['role', 'principal']
        },
        {
            'name': 'role_admins',
            'columns': [
                {'name': 'role', 'type': 'TEXT', 'primary_key': True},
                {'name': 'admin_role', 'type': 'TEXT', 'nullable': False}
            ]
        },
        {
            'name': 'market_state',
            'columns': [
                {'name': 'id', 'type': 'INT8', 'primary_key': True, 'default': '1'},
                {'name': 'paused', 'type': 'BOOL', 'nullable': False, 'default': 'false'},
                {'name': 'implementation', 'type': 'TEXT'},
                {'name': 'service_fees_collected', 'type': 'NUMERIC(78, 0)', 'nullable': False, 'default': '0'},
                {'name': 'layout_version', 'type': 'INT8', 'nullable': False, 'default': '1'}
            ]
        }
    ],
    'triggers': [
        {
            'name': 'market_listings_touch',
            'table': 'market_listings',
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'touch_updated_at',
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        }
    ]
}
