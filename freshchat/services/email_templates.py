from __future__ import annotations

from html import escape

PRODUCT_NAME = "Fresh Chat"


def otp_subject() -> str:
    return f"Your {PRODUCT_NAME} Login Code"


def otp_text(code: str, expiry_minutes: int) -> str:
    return (
        f"Your OTP is: {code}\n\n"
        f"This code will expire in {expiry_minutes} minutes.\n"
        "If you didn't request this code, you can ignore this email."
    )


def otp_html(code: str, expiry_minutes: int) -> str:
    """HTML body for the login code email."""
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <title>{PRODUCT_NAME} Login Code</title>
        <style>
            body {{ font-family: Arial, sans-serif; background-color: #f4f4f4; margin: 0; padding: 0; }}
            .container {{ max-width: 600px; margin: 20px auto; background-color: #ffffff; border-radius: 10px; overflow: hidden; }}
            .header {{ background: linear-gradient(135deg, #3390ec 0%, #00c6ff 100%); padding: 30px; text-align: center; }}
            .header h1 {{ color: white; margin: 0; font-size: 28px; }}
            .content {{ padding: 40px 30px; color: #333; font-size: 16px; line-height: 1.6; }}
            .otp-box {{ background-color: #f8f9fa; padding: 20px; text-align: center; border-radius: 8px; margin: 30px 0; border: 2px dashed #3390ec; }}
            .otp-code {{ font-size: 36px; font-weight: bold; letter-spacing: 8px; color: #3390ec; font-family: 'Courier New', monospace; }}
            .footer {{ padding: 20px; text-align: center; background-color: #f8f9fa; color: #666; font-size: 14px; }}
            .warning {{ color: #dc3545; font-size: 14px; margin-top: 20px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="header"><h1>{PRODUCT_NAME}</h1></div>
            <div class="content">
                <h2>Hello!</h2>
                <p>You have requested to log in to {PRODUCT_NAME}. Use the following one-time password to complete your sign-in:</p>
                <div class="otp-box"><div class="otp-code">{escape(code)}</div></div>
                <p><strong>This code will expire in {expiry_minutes} minutes.</strong></p>
                <p class="warning">If you didn't request this code, please ignore this email.</p>
            </div>
            <div class="footer">
                <p>This is an automated message, please do not reply to this email.</p>
            </div>
        </div>
    </body>
    </html>
    """


def welcome_subject() -> str:
    return f"Welcome to {PRODUCT_NAME}!"


def welcome_text(name: str) -> str:
    return f"Welcome {name}! Thank you for joining {PRODUCT_NAME}. Start messaging now!"
