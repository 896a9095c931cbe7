from mongoengine import Document, StringField, EmailField, IntField, BooleanField


class EmailConfig(Document):
    email_user = StringField(required=True)       # sender account
    email_pass = StringField(required=True)       # app password
    seller_email = EmailField(required=True)      # shop owner inbox
    smtp_host = StringField(default="smtp.gmail.com")
    smtp_port = IntField(default=587)
    use_tls = BooleanField(default=True)

    meta = {'collection': 'email_config'}

    def to_settings(self) -> dict:
        return {
            'email_user': self.email_user,
            'email_pass': self.email_pass,
            'seller_email': self.seller_email,
            'smtp_host': self.smtp_host,
            'smtp_port': self.smtp_port,
            'use_tls': self.use_tls,
        }
