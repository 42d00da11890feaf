"""CRM Campaign Repository — email templates and campaign delivery stats."""

from core.base_repository import BaseRepository


def _rate(part, whole):
    return round(part / whole * 100, 1) if whole else 0


class CampaignRepository(BaseRepository):

    def list_templates(self, active_only=True):
        where = 'WHERE active = TRUE' if active_only else ''
        return self.query_all(f'SELECT * FROM email_templates {where} ORDER BY name')

    def get_template_by_name(self, name):
        return self.query_one(
            'SELECT * FROM email_templates WHERE name = %s AND active = TRUE', (name,)
        )

    def get_template(self, template_id):
        return self.query_one('SELECT * FROM email_templates WHERE id = %s', (template_id,))

    def list_campaigns(self, status=None):
        params = ()
        where = ''
        if status:
            where = 'WHERE ec.status = %s'
            params = (status,)
        campaigns = self.query_all(
            f'''SELECT ec.*, t.name as template_name
                FROM email_campaigns ec
                LEFT JOIN email_templates t ON t.id = ec.template_id
                {where}
                ORDER BY ec.created_at DESC''',
            params
        )
        for c in campaigns:
            recipients = c.get('recipient_count') or 0
            c['open_rate'] = _rate(c.get('opened_count') or 0, recipients)
            c['click_rate'] = _rate(c.get('clicked_count') or 0, recipients)
            c['bounce_rate'] = _rate(c.get('bounced_count') or 0, recipients)
        return campaigns
