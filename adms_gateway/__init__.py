"""HTTP gateway for the iclock/ADMS biometric terminal push protocol."""
