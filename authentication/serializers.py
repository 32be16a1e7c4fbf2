from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    identifier = serializers.CharField(
        required=True,
        error_messages={'required': 'El email o usuario es requerido.'}
    )

    password = serializers.CharField(
        required=True,
        style={'input_type': 'password'},
        write_only=True,
        error_messages={'required': 'La contraseña es requerida.'}
    )
