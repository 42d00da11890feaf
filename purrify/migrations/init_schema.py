"""Database schema initialization.

Contains all CREATE TABLE and CREATE INDEX statements plus seed data for
the Purrify CRM database. Status enumerations, uniqueness and foreign keys
are enforced here by constraints.

Called by database.init_db() at application startup.
"""


def create_schema(conn, cursor):
    """Create all database tables, indexes, and seed data.

    Args:
        conn: Database connection (caller commits)
        cursor: Database cursor from get_cursor(conn)
    """
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            name TEXT,
            password_hash TEXT,
            role TEXT NOT NULL DEFAULT 'sales' CHECK (role IN ('admin', 'sales', 'viewer')),
            can_access_crm BOOLEAN DEFAULT TRUE,
            is_active BOOLEAN DEFAULT TRUE,
            last_login TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS customers (
            id SERIAL PRIMARY KEY,
            store_name TEXT NOT NULL,
            email TEXT,
            phone TEXT,
            owner_manager_name TEXT,
            type TEXT NOT NULL DEFAULT 'B2B' CHECK (type IN ('B2B', 'B2C', 'Affiliate')),
            status TEXT NOT NULL DEFAULT 'Interested'
                CHECK (status IN ('Qualified', 'Interested', 'Not Qualified', 'Not Interested', 'Dog Store')),
            notes TEXT,
            province TEXT,
            city TEXT,
            street TEXT,
            postal_code TEXT,
            website TEXT,
            stripe_customer_id TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_customers_status ON customers(status)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_customers_province ON customers(province)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_customers_created ON customers(created_at)')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS tags (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            color TEXT DEFAULT '#6b7280',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS customer_tags (
            customer_id INTEGER NOT NULL REFERENCES customers(id) ON DELETE CASCADE,
            tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
            PRIMARY KEY (customer_id, tag_id)
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS deal_stages (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            order_index INTEGER NOT NULL,
            color TEXT DEFAULT '#6b7280'
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS deals (
            id SERIAL PRIMARY KEY,
            customer_id INTEGER REFERENCES customers(id) ON DELETE SET NULL,
            title TEXT NOT NULL,
            value NUMERIC(12,2) DEFAULT 0,
            stage TEXT NOT NULL REFERENCES deal_stages(name) ON UPDATE CASCADE,
            probability INTEGER DEFAULT 0 CHECK (probability BETWEEN 0 AND 100),
            expected_close_date DATE,
            notes TEXT,
            closed_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_deals_stage ON deals(stage)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_deals_customer ON deals(customer_id)')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS products (
            id SERIAL PRIMARY KEY,
            sku TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            description TEXT,
            unit_price NUMERIC(12,2) NOT NULL DEFAULT 0,
            currency TEXT DEFAULT 'CAD',
            active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS invoices (
            id SERIAL PRIMARY KEY,
            invoice_number TEXT NOT NULL UNIQUE,
            customer_id INTEGER NOT NULL REFERENCES customers(id) ON DELETE RESTRICT,
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'paid', 'overdue', 'cancelled')),
            subtotal NUMERIC(12,2) DEFAULT 0,
            tax NUMERIC(12,2) DEFAULT 0,
            shipping NUMERIC(12,2) DEFAULT 0,
            discount NUMERIC(12,2) DEFAULT 0,
            total NUMERIC(12,2) DEFAULT 0,
            currency TEXT DEFAULT 'CAD',
            due_date DATE,
            sent_date TIMESTAMP,
            paid_date TIMESTAMP,
            notes TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_invoices_customer ON invoices(customer_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_invoices_due ON invoices(due_date)')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS invoice_items (
            id SERIAL PRIMARY KEY,
            invoice_id INTEGER NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
            product_id INTEGER REFERENCES products(id) ON DELETE SET NULL,
            product_sku TEXT,
            description TEXT,
            quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity > 0),
            unit_price NUMERIC(12,2) NOT NULL DEFAULT 0,
            total NUMERIC(12,2) NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS shipments (
            id SERIAL PRIMARY KEY,
            customer_id INTEGER NOT NULL REFERENCES customers(id) ON DELETE RESTRICT,
            invoice_id INTEGER REFERENCES invoices(id) ON DELETE SET NULL,
            order_number TEXT,
            tracking_number TEXT,
            carrier TEXT,
            service_level TEXT DEFAULT 'ground',
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'label_created', 'picked_up', 'in_transit',
                                  'out_for_delivery', 'delivered', 'exception', 'cancelled', 'returned')),
            package_count INTEGER DEFAULT 1,
            actual_weight NUMERIC(8,2),
            shipping_cost NUMERIC(10,2),
            shipped_date TIMESTAMP,
            estimated_delivery_date DATE,
            delivered_date TIMESTAMP,
            notes TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_shipments_status ON shipments(status)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_shipments_customer ON shipments(customer_id)')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS shipping_events (
            id SERIAL PRIMARY KEY,
            shipment_id INTEGER NOT NULL REFERENCES shipments(id) ON DELETE CASCADE,
            status TEXT NOT NULL,
            message TEXT,
            location TEXT,
            timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS tasks (
            id SERIAL PRIMARY KEY,
            customer_id INTEGER REFERENCES customers(id) ON DELETE CASCADE,
            type TEXT NOT NULL DEFAULT 'other' CHECK (type IN ('call', 'email', 'follow_up', 'other')),
            title TEXT NOT NULL,
            due_date TIMESTAMP NOT NULL,
            priority TEXT NOT NULL DEFAULT 'medium' CHECK (priority IN ('low', 'medium', 'high')),
            status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'completed', 'cancelled')),
            notes TEXT,
            completed_at TIMESTAMP,
            reminder_time TIMESTAMP,
            reminder_sent BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_tasks_customer ON tasks(customer_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_tasks_reminder ON tasks(reminder_time) WHERE reminder_sent = FALSE')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS email_templates (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            subject TEXT NOT NULL,
            body TEXT NOT NULL,
            category TEXT,
            variables TEXT[] DEFAULT '{}',
            active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS email_campaigns (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            template_id INTEGER REFERENCES email_templates(id) ON DELETE SET NULL,
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'scheduled', 'sending', 'sent', 'cancelled')),
            scheduled_date TIMESTAMP,
            sent_date TIMESTAMP,
            recipient_count INTEGER DEFAULT 0,
            opened_count INTEGER DEFAULT 0,
            clicked_count INTEGER DEFAULT 0,
            bounced_count INTEGER DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # Seed data
    cursor.execute('''
        INSERT INTO deal_stages (name, order_index, color) VALUES
        ('Lead', 1, '#6b7280'),
        ('Qualified', 2, '#3b82f6'),
        ('Proposal', 3, '#8b5cf6'),
        ('Negotiation', 4, '#f59e0b'),
        ('Closed Won', 5, '#16a34a'),
        ('Closed Lost', 6, '#dc2626')
        ON CONFLICT (name) DO NOTHING
    ''')

    cursor.execute('''
        INSERT INTO email_templates (name, subject, body, category, variables) VALUES
        ('Invoice Notification', 'Invoice {{invoice_number}} from Purrify',
         '<p>Hi {{customer_name}},</p><p>Your invoice {{invoice_number}} for {{invoice_total}} is due {{invoice_due_date}}.</p>',
         'invoice', ARRAY['customer_name', 'invoice_number', 'invoice_total', 'invoice_due_date']),
        ('Shipment Notification', 'Your Purrify order has shipped',
         '<p>Hi {{customer_name}},</p><p>Your order shipped with {{shipment_carrier}}. Tracking: {{tracking_number}}. Estimated delivery: {{estimated_delivery}}.</p>',
         'shipment', ARRAY['customer_name', 'shipment_carrier', 'tracking_number', 'estimated_delivery']),
        ('Welcome Email', 'Welcome to Purrify, {{customer_name}}',
         '<p>Hi {{customer_name}},</p><p>Thanks for partnering with Purrify.</p>',
         'onboarding', ARRAY['customer_name'])
        ON CONFLICT (name) DO NOTHING
    ''')
